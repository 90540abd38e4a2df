"""
Exception hierarchy for the Ensemble orchestration core.

This module defines the error types raised inside the core. Public entry
points never let these escape: the orchestration boundary converts each of
them into a single typed ``error`` event (see ``ensemble.agent.events``).
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    UNKNOWN = "UNKNOWN"
    CONFIGURATION = "CONFIGURATION"
    CONNECTION = "CONNECTION"
    API = "API"
    VALIDATION = "VALIDATION"
    RATE_LIMIT = "RATE_LIMIT"
    PLANNING = "PLANNING"
    GRAPH = "GRAPH"
    EXECUTION = "EXECUTION"


class EnsembleError(Exception):
    """
    Base exception class for all Ensemble errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    error_code : ErrorCode, default=ErrorCode.UNKNOWN
        Categorization code for the error.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> raise EnsembleError("Something went wrong", ErrorCode.UNKNOWN)
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.error_code: ErrorCode = error_code
        self.details: dict[str, Any] = details or {}
        self.cause: Exception | None = cause

    def __str__(self) -> str:
        parts: list[str] = [f"[{self.error_code.value}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"Details: {detail_str}")
        if self.cause:
            parts.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"details={self.details!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the error to a dictionary.

        Returns
        -------
        dict[str, Any]
            Dictionary representation of the error with all context.
        """
        result: dict[str, Any] = {
            "type": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class ConfigurationError(EnsembleError):
    """
    Exception raised for configuration-related errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    config_key : str | None, optional
        The configuration key that caused the error.
    config_file : str | None, optional
        The configuration file path where the error occurred.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(
            message,
            error_code=ErrorCode.CONFIGURATION,
            details=details,
            cause=cause,
        )
        self.config_key: str | None = config_key
        self.config_file: str | None = config_file


class ConnectionError(EnsembleError):
    """Exception raised when the completion endpoint cannot be reached."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if endpoint:
            details["endpoint"] = endpoint
        super().__init__(
            message,
            error_code=ErrorCode.CONNECTION,
            details=details,
            cause=cause,
        )
        self.endpoint: str | None = endpoint


class APIError(EnsembleError):
    """
    Exception raised for completion API errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    status_code : int | None, optional
        HTTP status code if applicable.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(
            message,
            error_code=ErrorCode.API,
            details=details,
            cause=cause,
        )
        self.status_code: int | None = status_code


class RateLimitError(APIError):
    """Exception raised when rate limits are exceeded after all retries."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(
            message,
            status_code=429,
            details=details,
            cause=cause,
        )
        self.error_code = ErrorCode.RATE_LIMIT
        self.retry_after: float | None = retry_after


class ValidationError(EnsembleError):
    """
    Exception raised for validation errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    field : str | None, optional
        The field that failed validation.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    cause : Exception | None, optional
        The underlying exception that caused this error.

    Examples
    --------
    >>> raise ValidationError("Unknown agent id", field="agent_id")
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(
            message,
            error_code=ErrorCode.VALIDATION,
            details=details,
            cause=cause,
        )
        self.field: str | None = field


class PlanningError(EnsembleError):
    """
    Exception raised when the planner does not produce a usable team spec.

    Covers an empty planner response, text without a JSON object, a JSON
    object that is not a valid environment spec, and completion failures
    during the planner conversation.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.PLANNING,
            details=details,
            cause=cause,
        )


class DependencyGraphError(EnsembleError):
    """
    Exception raised when the agent dependency graph is malformed.

    Parameters
    ----------
    message : str
        Human-readable error message.
    agent_id : str | None, optional
        The agent at which the problem was detected.
    details : dict[str, Any] | None, optional
        Additional context about the error.
    """

    def __init__(
        self,
        message: str,
        agent_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if agent_id:
            details["agent_id"] = agent_id
        super().__init__(message, error_code=ErrorCode.GRAPH, details=details)
        self.agent_id: str | None = agent_id


class MissingDependencyError(DependencyGraphError):
    """An agent depends on an id that is not part of the team spec."""

    def __init__(self, agent_id: str, missing_id: str) -> None:
        super().__init__(
            f"Agent '{agent_id}' depends on unknown agent '{missing_id}'",
            agent_id=agent_id,
            details={"missing_id": missing_id},
        )
        self.missing_id: str = missing_id


class DependencyCycleError(DependencyGraphError):
    """The dependsOn edges form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            agent_id=cycle[0] if cycle else None,
            details={"cycle": cycle},
        )
        self.cycle: list[str] = cycle


class DuplicateAgentError(DependencyGraphError):
    """Two agents in one spec share an id."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Duplicate agent id '{agent_id}'", agent_id=agent_id)


class AgentExecutionError(EnsembleError):
    """
    Exception raised when the completion service fails while an agent runs.

    Parameters
    ----------
    agent_id : str
        The agent whose completion failed.
    message : str
        Failure description reported by the completion client.
    """

    def __init__(
        self,
        agent_id: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.EXECUTION,
            details={"agent_id": agent_id},
            cause=cause,
        )
        self.agent_id: str = agent_id


class SynthesisError(EnsembleError):
    """Exception raised when the synthesis completion fails."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message, error_code=ErrorCode.EXECUTION, cause=cause)
