"""
Package-level exception hierarchy for planview.

All exceptions inherit from PlanViewError, enabling:
- Catching all planview errors with a single except clause
- Rich context fields for debugging (source tag, config_key, detail)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    PlanViewError
    ├── MalformedPlanError   – Input cannot be structurally parsed at all
    └── ConfigurationError   – Invalid configuration value

    UnresolvedReferenceWarning (UserWarning)
                             – A shared-subplan reference has no registry
                               entry. Recorded on the node, never fatal.
"""

from __future__ import annotations

from typing import Any


class PlanViewError(Exception):
    """
    Base exception for all planview errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class MalformedPlanError(PlanViewError):
    """
    Raised when plan text cannot be structurally parsed.

    No partial tree is ever returned alongside this error. Callers are
    expected to show the raw (escaped) source as a fallback.

    Attributes:
        message: Human-readable error description
        detail: Technical details for debugging (optional)
        source: Pipeline stage that failed (e.g. "empty", "json_decode",
            "validation", "resource_limit")
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(PlanViewError):
    """
    Error in planview configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result


# ── Warnings ─────────────────────────────────────────────────────────────


class UnresolvedReferenceWarning(UserWarning):
    """A node refers to a CTE/InitPlan/SubPlan that was never defined."""
