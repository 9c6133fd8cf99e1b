"""Fatal translation errors.

Every error raised here aborts generation before the Emitter runs, so a
half-formed model is never produced. Non-fatal approximations are not
errors; they go to the abstraction ledger instead.

Error envelope, as returned by ``TranslationError.to_dict()``:

    {
        "error": {
            "code": "UNRESOLVED_BOUND",
            "message": "Human-readable description",
            "location": "Bank.sol:12"
        }
    }
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from sol2promela.core.types import Location


# ── Error Codes ──────────────────────────────────────────────────────────────


class ErrorCode(str, Enum):
    """Standard error codes carried by every translation error."""

    UNSUPPORTED_CONSTRUCT = "UNSUPPORTED_CONSTRUCT"
    UNRESOLVED_BOUND = "UNRESOLVED_BOUND"
    INVALID_AGENT_CONFIG = "INVALID_AGENT_CONFIG"
    INVALID_CONFIG = "INVALID_CONFIG"


# ── Exceptions ───────────────────────────────────────────────────────────────


class TranslationError(Exception):
    """Base class for all fatal translation errors."""

    code: ErrorCode = ErrorCode.INVALID_CONFIG

    def __init__(self, message: str, location: Location | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location is not None:
            return f"{self.location}: {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "location": str(self.location) if self.location else None,
            }
        }


class UnsupportedConstructError(TranslationError):
    """AST node with no defined PROMELA mapping."""

    code = ErrorCode.UNSUPPORTED_CONSTRUCT

    def __init__(self, node_kind: str, location: Location | None = None, detail: str = "") -> None:
        message = f"unsupported construct '{node_kind}'"
        if detail:
            message += f": {detail}"
        super().__init__(message, location)
        self.node_kind = node_kind


class UnresolvedBoundError(TranslationError):
    """Dynamic array, mapping or string with neither an explicit nor a default bound."""

    code = ErrorCode.UNRESOLVED_BOUND

    def __init__(self, declaration: str, kind: str, location: Location | None = None) -> None:
        super().__init__(
            f"no bound configured for {kind} '{declaration}' and no global default",
            location,
        )
        self.declaration = declaration
        self.kind = kind


class InvalidAgentConfig(TranslationError):
    """Agent configuration that cannot produce a well-formed set of callers."""

    code = ErrorCode.INVALID_AGENT_CONFIG
