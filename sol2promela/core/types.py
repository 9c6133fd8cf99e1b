"""Shared enums and schemas used across the engine."""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


# ── Enums ────────────────────────────────────────────────────────────────────


class AbstractionCategory(str, enum.Enum):
    """Kind of fidelity-reducing decision recorded in the ledger."""

    TYPE_WIDTH = "TypeWidthAbstraction"
    LOOP_BOUND = "LoopBoundAbstraction"
    RECURSION_BOUND = "RecursionBoundAbstraction"
    OVERFLOW_POLICY = "OverflowPolicyAbstraction"
    STRING = "StringAbstraction"
    AGENT_STEP_BOUND = "AgentStepBoundAbstraction"
    VALUE_DOMAIN = "ValueDomainAbstraction"
    INSTANCE = "InstanceAbstraction"
    EXTERNAL_TRANSFER = "ExternalTransferAbstraction"
    ENVIRONMENT = "EnvironmentAbstraction"
    ADDRESS = "AddressAbstraction"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    EXTERNAL = "external"
    INTERNAL = "internal"
    PRIVATE = "private"


class StateMutability(str, enum.Enum):
    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"


class OverflowPolicy(str, enum.Enum):
    """What a bounded collection does when a write would exceed its bound."""

    REJECT = "reject"
    SATURATE = "saturate"


class LoopBoundPolicy(str, enum.Enum):
    """What a bounded loop does once its iteration budget is exhausted."""

    BLOCK = "block"
    EXIT = "exit"


# ── Shared Schemas ───────────────────────────────────────────────────────────


class Location(BaseModel):
    """Source location parsed from a solc ``src`` field (offset:length:fileIndex)."""

    model_config = ConfigDict(frozen=True)

    file_path: str = ""
    offset: int = 0
    length: int = 0
    line: int = 0

    @classmethod
    def from_src(cls, src: str, source_code: str = "", file_path: str = "") -> "Location":
        """Parse an AST ``src`` field like ``'120:45:0'``."""
        parts = (src or "").split(":")
        if len(parts) < 2:
            return cls(file_path=file_path)
        offset = int(parts[0])
        length = int(parts[1])
        line = source_code[:offset].count("\n") + 1 if source_code else 0
        return cls(file_path=file_path, offset=offset, length=length, line=line)

    def __str__(self) -> str:
        name = self.file_path or "<source>"
        if self.line:
            return f"{name}:{self.line}"
        return f"{name}@{self.offset}"


class AbstractionRecord(BaseModel):
    """One approximation decision. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    source_location: Location
    category: AbstractionCategory
    description: str
