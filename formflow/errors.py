"""
Error types surfaced through the API envelope.
Each carries the envelope error code and the HTTP status it maps to.
"""


class FormFlowError(Exception):
    """Base error."""
    code = "INTERNAL_ERROR"
    status = 500

    def __init__(self, message: str, code: str = None, status: int = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status:
            self.status = status


class InvalidRequestError(FormFlowError, ValueError):
    """Request data failed validation."""
    code = "VALIDATION_ERROR"
    status = 400


class NotFoundError(FormFlowError, LookupError):
    """Workflow, project, node or connection does not exist."""
    code = "NOT_FOUND"
    status = 404


class ConnectionRejectedError(FormFlowError):
    """Connection would break a graph invariant."""
    code = "CONNECTION_REJECTED"
    status = 409


class ProjectError(FormFlowError, ValueError):
    """Project cannot be created, switched or deleted."""
    code = "PROJECT_ERROR"
    status = 400
