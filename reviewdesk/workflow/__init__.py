from .errors import (
    WorkflowError,
    NotFound,
    InvalidTransition,
    ValidationError,
    ConcurrentModification,
)
from .engine import WorkflowEngine, TransitionResult
