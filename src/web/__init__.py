"""HTTP surface of the care-team service."""
