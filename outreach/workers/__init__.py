"""
Workers Package
Background orchestration cadences
"""
from outreach.workers.orchestration_scheduler import CadenceRunResult, OrchestrationScheduler, StepResult

__all__ = [
    "CadenceRunResult",
    "OrchestrationScheduler",
    "StepResult",
]
