"""Tests for sol2promela.core.errors — codes and the error envelope."""

from __future__ import annotations

from sol2promela.core.errors import (
    ErrorCode,
    InvalidAgentConfig,
    TranslationError,
    UnresolvedBoundError,
    UnsupportedConstructError,
)
from sol2promela.core.types import Location


class TestErrors:
    def test_codes(self):
        assert UnsupportedConstructError("X").code == ErrorCode.UNSUPPORTED_CONSTRUCT
        assert UnresolvedBoundError("C.m", "mapping").code == ErrorCode.UNRESOLVED_BOUND
        assert InvalidAgentConfig("bad").code == ErrorCode.INVALID_AGENT_CONFIG

    def test_all_are_translation_errors(self):
        for exc in (UnsupportedConstructError("X"), UnresolvedBoundError("C.m", "mapping"), InvalidAgentConfig("bad")):
            assert isinstance(exc, TranslationError)

    def test_unsupported_message(self):
        exc = UnsupportedConstructError("InlineAssembly", detail="assembly blocks")
        assert exc.message == "unsupported construct 'InlineAssembly': assembly blocks"
        assert exc.node_kind == "InlineAssembly"

    def test_str_includes_location(self):
        exc = UnresolvedBoundError("Bank.owners", "dynamic array", Location(file_path="Bank.sol", line=4))
        assert str(exc).startswith("Bank.sol:4: no bound configured for dynamic array 'Bank.owners'")

    def test_to_dict(self):
        exc = UnresolvedBoundError("C.m", "mapping", Location(file_path="C.sol", line=2))
        assert exc.to_dict() == {
            "error": {
                "code": "UNRESOLVED_BOUND",
                "message": "no bound configured for mapping 'C.m' and no global default",
                "location": "C.sol:2",
            }
        }

    def test_to_dict_without_location(self):
        assert InvalidAgentConfig("bad").to_dict()["error"]["location"] is None
