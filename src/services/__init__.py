"""
Services Module - application services for the care-team engine.

Application Services (orchestration):
- CareTeamService: every care-team mutation and read, one unit of work each

Domain Services (business logic):
- AssignmentRegistry, PreferenceRegistry, RestrictionRegistry
- EligibilityEvaluator

Infrastructure Services:
- Logging and observability (logging_config)
"""
