# reviewdesk/workflow/errors.py
"""Failure taxonomy for deliverable transitions.

Every error is recoverable by the caller. Only ConcurrentModification is
worth retrying; the others describe a request that will fail again as-is.
"""


class WorkflowError(Exception):
    code = "workflow_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


class NotFound(WorkflowError):
    code = "not_found"
    http_status = 404

    def __init__(self, deliverable_id):
        super().__init__(f"Deliverable {deliverable_id} not found.", deliverable_id=deliverable_id)
        self.deliverable_id = deliverable_id


class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, action: str, current_status: str, role: str):
        super().__init__(
            f"Cannot {action.replace('_', ' ')} a deliverable in status "
            f"'{current_status}' as {role}.",
            action=action,
            current_status=current_status,
            role=role,
        )
        self.action = action
        self.current_status = current_status
        self.role = role


class ValidationError(WorkflowError):
    code = "validation_error"
    http_status = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)
        self.field = field


class ConcurrentModification(WorkflowError):
    code = "concurrent_modification"
    http_status = 409
    retryable = True

    def __init__(self, deliverable_id, expected_status=None, expected_version=None):
        super().__init__(
            f"Deliverable {deliverable_id} was changed by someone else. Reload and try again.",
            deliverable_id=deliverable_id,
        )
        self.deliverable_id = deliverable_id
        self.expected_status = expected_status
        self.expected_version = expected_version
