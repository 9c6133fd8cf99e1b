"""Core configuration for the sol2promela engine.

Two layers:
  - ``Settings``: project-wide defaults loaded from the environment
    (``SOL2PROMELA_`` prefix, optional ``.env`` file).
  - ``TranslationConfig``: the configuration surface a single translation
    consumes. Bounds left as ``None`` are unresolved; the Type Mapper fails
    on them rather than inventing a value.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sol2promela.core.types import LoopBoundPolicy, OverflowPolicy

SUPPORTED_INT_WIDTHS: tuple[int, ...] = (8, 16, 32, 64)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SOL2PROMELA_",
        case_sensitive=False,
    )

    # ── Logging ──────────────────────────────────────────────────────────
    app_env: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # ── Type Mapper defaults ─────────────────────────────────────────────
    int_width_fallback: int = 8
    dynamic_array_max_len: int = 3
    mapping_max_entries: int = 3
    string_max_bytes: int = 32

    # ── Generator defaults ───────────────────────────────────────────────
    loop_max_iterations: int = 4
    max_recursion_depth: int = 2
    overflow_policy: OverflowPolicy = OverflowPolicy.REJECT
    loop_bound_policy: LoopBoundPolicy = LoopBoundPolicy.BLOCK

    # ── Agents / environment ─────────────────────────────────────────────
    agent_count: int = 2
    agent_max_steps: int | None = 4
    gas_limit: int = 30_000_000
    tx_gas_price: int = 1
    initial_timestamp: int = 1


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()


class ValueDomain(BaseModel):
    """Finite value domain for one argument: explicit values or an inclusive range."""

    values: list[int] = Field(default_factory=list)
    low: int | None = None
    high: int | None = None

    @model_validator(mode="after")
    def _one_shape(self) -> "ValueDomain":
        has_range = self.low is not None or self.high is not None
        if has_range and (self.low is None or self.high is None):
            raise ValueError("a range domain needs both 'low' and 'high'")
        if has_range and self.values:
            raise ValueError("a domain is either explicit values or a range, not both")
        return self

    @property
    def is_range(self) -> bool:
        return self.low is not None

    @property
    def is_empty(self) -> bool:
        if self.is_range:
            return self.high < self.low
        return not self.values

    def expand(self) -> list[int]:
        if self.is_range:
            return list(range(self.low, self.high + 1))
        return list(dict.fromkeys(self.values))


class TranslationConfig(BaseModel):
    """Configuration surface consumed by the translation core."""

    # Type Mapper
    int_width_fallback: int = 8
    dynamic_array_max_len: dict[str, int] = Field(default_factory=dict)
    default_array_max_len: int | None = None
    mapping_max_entries: dict[str, int] = Field(default_factory=dict)
    default_mapping_max_entries: int | None = None
    string_max_bytes: dict[str, int] = Field(default_factory=dict)
    default_string_max_bytes: int | None = None

    # Generator
    main_contract: str | None = None
    loop_max_iterations: int = 4
    loop_bound_policy: LoopBoundPolicy = LoopBoundPolicy.BLOCK
    max_recursion_depth: int = 2
    overflow_policy: OverflowPolicy = OverflowPolicy.REJECT
    checked_arithmetic: bool = True
    assert_as_violation: bool = False

    # Agents
    agent_count: int = 1
    agent_address_domain: list[int] = Field(default_factory=list)
    per_argument_value_domain: dict[str, dict[int, ValueDomain]] = Field(default_factory=dict)
    msg_value_domain: ValueDomain = Field(default_factory=lambda: ValueDomain(values=[0]))
    agent_max_steps: int | None = 4

    # Environment
    gas_limit: int = 30_000_000
    tx_gas_price: int = 1
    initial_timestamp: int = 1
    difficulty_domain: ValueDomain = Field(default_factory=lambda: ValueDomain(values=[0]))
    block_step_domain: ValueDomain = Field(default_factory=lambda: ValueDomain(values=[1]))
    timestamp_step_domain: ValueDomain = Field(default_factory=lambda: ValueDomain(values=[1]))

    # Never-claim placeholders: property name -> PROMELA predicate
    properties: dict[str, str] = Field(default_factory=dict)

    # Source context for locations
    source_code: str = ""
    file_path: str = ""

    @field_validator("int_width_fallback")
    @classmethod
    def _check_width(cls, v: int) -> int:
        if v not in SUPPORTED_INT_WIDTHS:
            raise ValueError(f"int_width_fallback must be one of {SUPPORTED_INT_WIDTHS}")
        return v

    @field_validator(
        "default_array_max_len",
        "default_mapping_max_entries",
        "default_string_max_bytes",
        "agent_max_steps",
    )
    @classmethod
    def _check_optional_positive(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("bounds must be positive")
        return v

    @field_validator("dynamic_array_max_len", "mapping_max_entries", "string_max_bytes")
    @classmethod
    def _check_positive_map(cls, v: dict[str, int]) -> dict[str, int]:
        for key, bound in v.items():
            if bound < 1:
                raise ValueError(f"bound for '{key}' must be positive")
        return v

    @field_validator("loop_max_iterations", "max_recursion_depth", "gas_limit")
    @classmethod
    def _check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def _check_step_domains(self) -> "TranslationConfig":
        for name in ("block_step_domain", "timestamp_step_domain"):
            domain: ValueDomain = getattr(self, name)
            values = domain.expand()
            if not values or min(values) < 1:
                raise ValueError(f"{name} must be non-empty with every step >= 1")
        return self

    @property
    def agent_addresses(self) -> list[int]:
        """Configured agent addresses, or ``1..agent_count`` when none are given."""
        if self.agent_address_domain:
            return list(self.agent_address_domain)
        return list(range(1, max(self.agent_count, 0) + 1))

    # ── Bound lookup ─────────────────────────────────────────────────────

    def array_bound(self, declaration: str) -> int | None:
        return self.dynamic_array_max_len.get(declaration, self.default_array_max_len)

    def mapping_bound(self, declaration: str) -> int | None:
        return self.mapping_max_entries.get(declaration, self.default_mapping_max_entries)

    def string_bound(self, declaration: str) -> int | None:
        return self.string_max_bytes.get(declaration, self.default_string_max_bytes)

    def argument_domain(self, function: str, signature: str, index: int) -> ValueDomain | None:
        """Look up a value domain by full signature first, then by bare name."""
        for key in (signature, function):
            domains = self.per_argument_value_domain.get(key)
            if domains is not None and index in domains:
                return domains[index]
        return None

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides: Any) -> "TranslationConfig":
        """Build a config whose unset bounds come from the project-wide settings."""
        s = settings or get_settings()
        data: dict[str, Any] = {
            "int_width_fallback": s.int_width_fallback,
            "default_array_max_len": s.dynamic_array_max_len,
            "default_mapping_max_entries": s.mapping_max_entries,
            "default_string_max_bytes": s.string_max_bytes,
            "loop_max_iterations": s.loop_max_iterations,
            "loop_bound_policy": s.loop_bound_policy,
            "max_recursion_depth": s.max_recursion_depth,
            "overflow_policy": s.overflow_policy,
            "agent_count": s.agent_count,
            "agent_max_steps": s.agent_max_steps,
            "gas_limit": s.gas_limit,
            "tx_gas_price": s.tx_gas_price,
            "initial_timestamp": s.initial_timestamp,
        }
        data.update(overrides)
        # One address per agent, 1..N, unless given explicitly
        data.setdefault("agent_address_domain", list(range(1, data["agent_count"] + 1)))
        return cls(**data)
