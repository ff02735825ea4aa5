"""gangflow: marketing workflow automation for the GangRun Printing storefront."""

from .audience import AudienceResolver, Recipient
from .contracts import StepDefinition, Trigger, WorkflowDefinition
from .customers import CustomerStore, get_customer_store
from .dispatch import TriggerEvaluator
from .engine import WorkflowEngine
from .events import EventTriggers
from .exceptions import (
    ExecutionConflict,
    GangflowError,
    StepFailed,
    UserNotInSegment,
    WorkflowNotFoundOrInactive,
)
from .execute import ExecutionDriver
from .persistence import ExecutionStatus, WorkflowExecution, get_repository
from .scheduler import ContinuationScheduler
from .steps import StepExecutor

__version__ = "0.1.0"
__all__ = [
    "AudienceResolver",
    "ContinuationScheduler",
    "CustomerStore",
    "EventTriggers",
    "ExecutionConflict",
    "ExecutionDriver",
    "ExecutionStatus",
    "GangflowError",
    "Recipient",
    "StepDefinition",
    "StepExecutor",
    "StepFailed",
    "Trigger",
    "TriggerEvaluator",
    "UserNotInSegment",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowNotFoundOrInactive",
    "get_customer_store",
    "get_repository",
]
