"""Centralized exception hierarchy for ThinkTank.

This module defines all custom exceptions used by the turn orchestration
engine, organized in a hierarchy for easy handling and specificity:

- InputError: the caller supplied something no decision can be made from
- DelegationFailure: the Reasoning Backend let us down (always recovered)
- LoopFailure: the auto-run loop has to stop (reported, never re-raised)
"""

from __future__ import annotations

from typing import Any, Optional


class ThinkTankError(Exception):
    """Base exception for all ThinkTank errors.

    Attributes:
        message: Human-readable error message.
        code: Optional error code for programmatic handling.
        details: Optional dictionary with additional error context.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(ThinkTankError):
    """Raised when there's a configuration problem."""
    pass


class MissingAPIKeyError(ConfigurationError):
    """Raised when a required API key is not configured."""

    def __init__(self, provider: str):
        super().__init__(
            message=f"API key for {provider} is not configured",
            code="MISSING_API_KEY",
            details={"provider": provider},
        )


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for '{field}': {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value)[:100], "reason": reason},
        )


# =============================================================================
# Model Errors
# =============================================================================

class ModelError(ThinkTankError):
    """Base exception for AI model client errors."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = details or {}
        if model:
            details["model"] = model
        super().__init__(message, code, details)


class APIError(ModelError):
    """Raised when an API call fails."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        details = {}
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, model, "API_ERROR", details)
        self.status_code = status_code


class RateLimitError(ModelError):
    """Raised when API rate limit is exceeded."""

    def __init__(self, model: str, retry_after: Optional[float] = None):
        details = {}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message=f"Rate limit exceeded for {model}",
            model=model,
            code="RATE_LIMIT",
            details=details,
        )
        self.retry_after = retry_after


class AuthenticationError(ModelError):
    """Raised when API authentication fails."""

    def __init__(self, model: str, reason: Optional[str] = None):
        message = f"Authentication failed for {model}"
        if reason:
            message += f": {reason}"
        super().__init__(message, model, "AUTH_ERROR")


# =============================================================================
# Orchestration Errors
# =============================================================================

class OrchestrationError(ThinkTankError):
    """Base exception for orchestration-related errors."""
    pass


class InputError(OrchestrationError):
    """Raised when a call cannot be served from the inputs given."""
    pass


class NoPersonasError(InputError):
    """Raised when an automatic decision is requested with no active personas."""

    def __init__(self, conversation_id: Optional[str] = None):
        details = {}
        if conversation_id:
            details["conversation_id"] = conversation_id
        super().__init__(
            message="No active personas available to take the next turn",
            code="NO_PERSONAS",
            details=details,
        )


class UnknownConversationError(InputError):
    """Raised when a conversation has not been attached to the engine."""

    def __init__(self, conversation_id: str):
        super().__init__(
            message=f"Conversation '{conversation_id}' is not attached",
            code="UNKNOWN_CONVERSATION",
            details={"conversation_id": conversation_id},
        )


class InvalidStrategyError(InputError):
    """Raised when an unknown turn strategy is requested."""

    def __init__(self, strategy: str):
        super().__init__(
            message=f"Unknown turn strategy '{strategy}'",
            code="INVALID_STRATEGY",
            details={"strategy": strategy},
        )


class DelegationFailure(OrchestrationError):
    """Base for Reasoning Backend failures. Always resolved via fallback."""
    pass


class ReasoningTimeoutError(DelegationFailure):
    """Raised when the Reasoning Backend does not answer in time."""

    def __init__(self, timeout: float):
        super().__init__(
            message=f"Reasoning backend timed out after {timeout}s",
            code="REASONING_TIMEOUT",
            details={"timeout_seconds": timeout},
        )


class ReasoningBackendError(DelegationFailure):
    """Raised when the Reasoning Backend call itself fails."""

    def __init__(self, reason: str, original_error: Optional[Exception] = None):
        details = {"reason": reason}
        if original_error:
            details["original_type"] = type(original_error).__name__
        super().__init__(
            message=f"Reasoning backend failed: {reason}",
            code="REASONING_BACKEND_ERROR",
            details=details,
        )


class ReasoningParseError(DelegationFailure):
    """Raised when the structured answer cannot be parsed or validated."""

    def __init__(self, reason: str, raw: str = ""):
        super().__init__(
            message=f"Could not parse reasoning answer: {reason}",
            code="REASONING_PARSE_ERROR",
            details={"reason": reason, "raw_preview": raw[:200]},
        )


class InvalidPersonaChoiceError(DelegationFailure):
    """Raised when the backend names a persona that is not on the roster."""

    def __init__(self, persona_id: str, available_ids: list[str]):
        super().__init__(
            message=f"Reasoning backend chose unknown persona '{persona_id}'",
            code="INVALID_PERSONA_CHOICE",
            details={"persona_id": persona_id, "available_ids": list(available_ids)},
        )


class LoopFailure(OrchestrationError):
    """Base for conditions that stop an auto-run loop."""
    pass


class GenerationFailedError(LoopFailure):
    """Raised when the Response Generator fails for the chosen persona."""

    def __init__(self, persona_id: str, reason: str):
        super().__init__(
            message=f"Response generation failed for persona '{persona_id}': {reason}",
            code="GENERATION_FAILED",
            details={"persona_id": persona_id, "reason": reason},
        )


class BudgetExhaustedError(LoopFailure):
    """Raised when the Budget Oracle denies (or cannot check) the next turn."""

    def __init__(self, user_id: Optional[str], reason: Optional[str] = None):
        message = "Budget exhausted"
        if reason:
            message += f": {reason}"
        super().__init__(
            message=message,
            code="BUDGET_EXHAUSTED",
            details={"user_id": user_id, "reason": reason},
        )


class CeilingReachedError(LoopFailure):
    """Raised when a conversation hits the message ceiling."""

    def __init__(self, ceiling: int):
        super().__init__(
            message=f"Message ceiling of {ceiling} reached",
            code="CEILING_REACHED",
            details={"ceiling": ceiling},
        )
