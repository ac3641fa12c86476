from __future__ import annotations


class AuthorDeployException(Exception):
    pass


class NotFoundException(AuthorDeployException):
    pass


class IntegrityException(AuthorDeployException):
    pass


class DeploymentStateException(IntegrityException):
    """Raised when a status transition is requested for a deployment that already left ``pending``."""

    def __init__(self, message: str, *, status: str) -> None:
        self.status = status
        super().__init__(message)


class ValidationException(AuthorDeployException):
    """A user-correctable input error, pinned to the offending field and constraint."""

    def __init__(self, message: str, *, field: str, constraint: str, kind: str = "invalid_field") -> None:
        self.field = field
        self.constraint = constraint
        self.kind = kind
        super().__init__(message)


class DispatchException(AuthorDeployException):
    """The provisioning service rejected a request or could not be reached.

    Nothing is persisted when this is raised, so the same request can simply be
    dispatched again.
    """

    def __init__(self, message: str, *, category: str, retryable: bool, status_code: int | None = None) -> None:
        self.category = category
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)
