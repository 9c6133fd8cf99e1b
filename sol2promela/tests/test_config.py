"""Tests for sol2promela.core.config — settings loading and validation."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from sol2promela.core.config import Settings, TranslationConfig, ValueDomain, get_settings
from sol2promela.core.types import LoopBoundPolicy, OverflowPolicy


class TestSettings:
    """Verify settings defaults and environment overrides."""

    def test_defaults(self):
        s = Settings()
        assert s.app_env == "development"
        assert s.agent_count == 2
        assert s.agent_max_steps == 4
        assert s.gas_limit == 30_000_000
        assert s.overflow_policy == OverflowPolicy.REJECT

    @patch.dict(os.environ, {"SOL2PROMELA_AGENT_COUNT": "3", "SOL2PROMELA_OVERFLOW_POLICY": "saturate"})
    def test_env_override(self):
        s = Settings()
        assert s.agent_count == 3
        assert s.overflow_policy == OverflowPolicy.SATURATE

    def test_get_settings_returns_same_instance(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()


class TestValueDomain:
    def test_values_are_deduplicated_in_order(self):
        assert ValueDomain(values=[2, 1, 2]).expand() == [2, 1]

    def test_range(self):
        domain = ValueDomain(low=1, high=3)
        assert domain.is_range
        assert domain.expand() == [1, 2, 3]

    def test_inverted_range_is_empty(self):
        assert ValueDomain(low=3, high=1).is_empty

    def test_half_range_rejected(self):
        with pytest.raises(ValidationError):
            ValueDomain(low=1)

    def test_values_and_range_rejected(self):
        with pytest.raises(ValidationError):
            ValueDomain(values=[1], low=0, high=2)


class TestTranslationConfig:
    def test_unset_bounds_stay_unresolved(self):
        config = TranslationConfig()
        assert config.array_bound("C.items") is None
        assert config.mapping_bound("C.m") is None
        assert config.string_bound("C.s") is None

    def test_declaration_bound_wins(self):
        config = TranslationConfig(dynamic_array_max_len={"C.items": 2}, default_array_max_len=7)
        assert config.array_bound("C.items") == 2
        assert config.array_bound("C.other") == 7

    def test_unsupported_width_fallback(self):
        with pytest.raises(ValidationError):
            TranslationConfig(int_width_fallback=12)

    def test_non_positive_bound(self):
        with pytest.raises(ValidationError):
            TranslationConfig(mapping_max_entries={"C.m": 0})

    def test_block_step_must_advance(self):
        with pytest.raises(ValidationError):
            TranslationConfig(block_step_domain={"values": [0, 1]})

    def test_agent_addresses_default(self):
        assert TranslationConfig(agent_count=3).agent_addresses == [1, 2, 3]
        assert TranslationConfig(agent_count=2, agent_address_domain=[9, 4]).agent_addresses == [9, 4]

    def test_argument_domain_lookup(self):
        config = TranslationConfig(per_argument_value_domain={
            "f": {0: {"values": [1]}},
            "f(uint8,bool)": {1: {"values": [0]}},
        })
        assert config.argument_domain("f", "f(uint8,bool)", 0).values == [1]
        assert config.argument_domain("f", "f(uint8,bool)", 1).values == [0]
        assert config.argument_domain("f", "f(uint8,bool)", 2) is None

    def test_from_settings(self):
        settings = Settings(agent_count=3, mapping_max_entries=5, loop_bound_policy=LoopBoundPolicy.EXIT)
        config = TranslationConfig.from_settings(settings, gas_limit=1000)
        assert config.agent_addresses == [1, 2, 3]
        assert config.default_mapping_max_entries == 5
        assert config.loop_bound_policy == LoopBoundPolicy.EXIT
        assert config.gas_limit == 1000
