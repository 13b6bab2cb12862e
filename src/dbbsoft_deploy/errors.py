"""Errors raised while building and applying a deployment descriptor."""
from typing import Optional


class DeployError(Exception):
    """Base class for deployment errors.

    Carries the name of the resource and the operation that failed so that
    callers can report exactly where a deployment stopped.
    """

    def __init__(self, message: str, resource: Optional[str] = None, operation: Optional[str] = None):
        self.message = message
        self.resource = resource
        self.operation = operation
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.resource and self.operation:
            return f"{self.operation} {self.resource}: {self.message}"
        if self.resource:
            return f"{self.resource}: {self.message}"
        return self.message


class ConfigurationError(DeployError):
    """Missing/invalid version source or malformed descriptor. Not retriable."""


class ResourceConflictError(DeployError):
    """The provisioning API rejected a name that is already owned incompatibly."""


class SubmissionError(DeployError):
    """A create/update/describe call to the provisioning API failed."""


class ConvergenceTimeout(DeployError):
    """The deployment was submitted but convergence was not observed in time.

    The underlying operation may still succeed asynchronously.
    """

    def __init__(self, message: str, resource: Optional[str] = None,
                 operation: Optional[str] = "wait", last_status: Optional[dict] = None):
        self.last_status = last_status or {}
        super().__init__(message, resource=resource, operation=operation)
