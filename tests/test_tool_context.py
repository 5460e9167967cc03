"""Tests for ToolContext and ToolResult value objects."""

from __future__ import annotations

import pytest

from toolhub.tools.context import TeamRef, ToolContext, UserRef
from toolhub.tools.result import ToolResult


class TestToolContext:
    def test_ids_from_refs(self) -> None:
        ctx = ToolContext(acting_user=UserRef(id=1), acting_team=TeamRef(id="t-9"))
        assert ctx.user_id == 1
        assert ctx.team_id == "t-9"

    def test_ids_none_without_refs(self) -> None:
        ctx = ToolContext()
        assert ctx.user_id is None
        assert ctx.team_id is None
        assert ctx.to_log_fields() == {"user_id": None, "team_id": None}

    def test_metadata_is_read_only(self) -> None:
        ctx = ToolContext(metadata={"a": 1})
        with pytest.raises(TypeError):
            ctx.metadata["b"] = 2  # type: ignore[index]

    def test_metadata_copied_from_source_dict(self) -> None:
        source = {"a": 1}
        ctx = ToolContext(metadata=source)
        source["a"] = 99
        assert ctx.metadata["a"] == 1

    def test_with_metadata_returns_new_context(self) -> None:
        ctx = ToolContext(acting_user=UserRef(id=1), metadata={"a": 1})
        derived = ctx.with_metadata({"b": 2})

        assert derived is not ctx
        assert dict(derived.metadata) == {"a": 1, "b": 2}
        assert dict(ctx.metadata) == {"a": 1}
        assert derived.acting_user == ctx.acting_user

    def test_with_metadata_overrides_key(self) -> None:
        ctx = ToolContext(metadata={"a": 1})
        assert ctx.with_metadata({"a": 2}).metadata["a"] == 2


class TestToolResult:
    def test_ok(self) -> None:
        result = ToolResult.ok({"x": 1})
        assert result.success is True
        assert result.data == {"x": 1}
        assert result.error is None
        assert result.error_code is None

    def test_fail_defaults_to_execution_error(self) -> None:
        result = ToolResult.fail("boom")
        assert result.success is False
        assert result.error_code == "EXECUTION_ERROR"
        assert result.error_message == "boom"
        assert result.data is None

    def test_with_metadata_keeps_outcome(self) -> None:
        result = ToolResult.fail("boom", "X").with_metadata({"trace_id": "abc"})
        assert result.error_code == "X"
        assert result.metadata["trace_id"] == "abc"

    def test_to_dict_success(self) -> None:
        assert ToolResult.ok([1]).to_dict() == {"ok": True, "data": [1]}
        assert ToolResult.ok(1, {"m": 2}).to_dict() == {
            "ok": True,
            "data": 1,
            "metadata": {"m": 2},
        }

    def test_to_dict_failure_merges_metadata_into_error(self) -> None:
        result = ToolResult.fail("nope", "TOOL_NOT_FOUND", {"trace_id": "t1"})
        assert result.to_dict() == {
            "ok": False,
            "error": {"message": "nope", "code": "TOOL_NOT_FOUND", "trace_id": "t1"},
        }
