from sitelock.maintenance.controller import InvalidInputError, LockController, LockOutcome
from sitelock.maintenance.evaluator import AdmissionContext, AdmissionEvaluator, Decision, decide
from sitelock.maintenance.mode import MaintenanceGate, ServiceUnavailableError, require_admission
from sitelock.maintenance.rules import BypassRuleSet

__all__ = [
    "AdmissionContext",
    "AdmissionEvaluator",
    "BypassRuleSet",
    "Decision",
    "InvalidInputError",
    "LockController",
    "LockOutcome",
    "MaintenanceGate",
    "ServiceUnavailableError",
    "decide",
    "require_admission",
]
