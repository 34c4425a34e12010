"""
Operator exceptions.

Errors raised by the config dispatcher and the integration job store.
Transient store failures are not wrapped: they surface as whatever the
database or Redis client raised and are logged by the loop that hit them.
"""


class OperatorError(Exception):
    """Base exception for all operator errors."""
    pass


class ConfigNotFoundError(OperatorError):
    """Raised when a required config resource does not exist at startup."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Config resource not found: {name}")


class ConfigValidationError(OperatorError):
    """
    Raised by a config handler when applied fields are inconsistent.

    The fields are already applied when this is raised; the error only
    informs the caller.
    """
    pass


class JobNotFoundError(OperatorError):
    """Raised when a requested integration job does not exist."""

    def __init__(self, namespace: str, name: str):
        self.namespace = namespace
        self.name = name
        super().__init__(f"IntegrationJob not found: {namespace}/{name}")


class StateConflictError(OperatorError):
    """
    Raised when a conditional state update finds an unexpected state.

    Used when promoting a job that was changed by someone else since the
    dispatch pass listed it.
    """

    def __init__(self, job_id: str, expected_state: str, actual_state: str):
        self.job_id = job_id
        self.expected_state = expected_state
        self.actual_state = actual_state
        super().__init__(
            f"State conflict for job {job_id}: "
            f"expected state '{expected_state}', got '{actual_state}'"
        )
