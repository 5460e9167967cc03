"""Tests for read options parsing, the operator table and filter compilation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Boolean, Integer, String
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from toolhub.data.provider import compile_filter
from toolhub.data.query import (
    OPERATORS_BY_TYPE,
    Filter,
    FilterOp,
    ReadOptions,
    Sort,
    SortDirection,
    operators_for_type,
)
from toolhub.infra.errors import QueryValidationError


class _Base(DeclarativeBase):
    pass


class _Row(_Base):
    __tablename__ = "rows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    is_done: Mapped[bool] = mapped_column(Boolean)
    owner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)


def _sql(clause) -> str:
    return str(
        clause.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True})
    )


class TestOperatorTable:
    def test_boolean_only_eq(self) -> None:
        assert OPERATORS_BY_TYPE["boolean"] == frozenset({FilterOp.eq})

    def test_numeric(self) -> None:
        ops = operators_for_type("integer")
        assert FilterOp.gte in ops
        assert FilterOp.like not in ops
        assert operators_for_type("decimal") == ops

    def test_temporal(self) -> None:
        ops = operators_for_type("datetime")
        assert {FilterOp.between, FilterOp.is_null} <= ops
        assert FilterOp.in_ not in ops

    def test_text_is_the_fallback(self) -> None:
        assert operators_for_type("string") == frozenset(
            {FilterOp.eq, FilterOp.ne, FilterOp.like, FilterOp.in_}
        )
        assert operators_for_type("uuid") == operators_for_type("string")
        assert operators_for_type(None) == operators_for_type("string")

    def test_type_names_case_insensitive(self) -> None:
        assert operators_for_type(" Boolean ") == operators_for_type("boolean")

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            OPERATORS_BY_TYPE["json"] = frozenset()  # type: ignore[index]


class TestReadOptions:
    def test_parses_nested_entries(self) -> None:
        options = ReadOptions.model_validate({
            "filters": [{"field": "title", "op": "LIKE", "value": "x"}],
            "sort": [{"field": "id", "dir": "DESC"}],
            "fields": ["id", "title"],
            "page": 2,
        })
        assert options.filters[0].op is FilterOp.like
        assert options.sort[0].direction is SortDirection.desc
        assert options.fields == ("id", "title")
        assert options.filtered_fields() == {"title"}

    def test_defaults(self) -> None:
        options = ReadOptions()
        assert options.filters == ()
        assert options.fields is None
        assert options.page == 1
        assert options.per_page is None

    def test_sort_accepts_direction_key(self) -> None:
        assert Sort.model_validate({"field": "id", "direction": "asc"}).direction == "asc"

    def test_unknown_operator_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            Filter.model_validate({"field": "id", "op": "regex", "value": ".*"})

    def test_frozen(self) -> None:
        with pytest.raises(PydanticValidationError):
            Filter(field="id").field = "other"  # type: ignore[misc]


class TestCompileFilter:
    def test_eq(self) -> None:
        assert _sql(compile_filter(_Row.__table__.c.id, Filter(field="id", value=3))) == (
            "rows.id = 3"
        )

    def test_eq_none_is_null(self) -> None:
        clause = compile_filter(_Row.__table__.c.owner_id, Filter(field="owner_id"))
        assert _sql(clause) == "rows.owner_id IS NULL"

    def test_ne(self) -> None:
        clause = compile_filter(_Row.__table__.c.id, Filter(field="id", op="ne", value=3))
        assert _sql(clause) == "rows.id != 3"

    def test_like_wraps_value(self) -> None:
        clause = compile_filter(
            _Row.__table__.c.title, Filter(field="title", op="like", value="abc")
        )
        assert _sql(clause).startswith("rows.title LIKE ")
        assert clause.right.value == "%abc%"

    def test_in_accepts_scalar(self) -> None:
        clause = compile_filter(_Row.__table__.c.id, Filter(field="id", op="in", value=[1, 2]))
        assert _sql(clause) == "rows.id IN (1, 2)"
        scalar = compile_filter(_Row.__table__.c.id, Filter(field="id", op="in", value=5))
        assert _sql(scalar) == "rows.id IN (5)"

    def test_range_operators(self) -> None:
        column = _Row.__table__.c.id
        assert _sql(compile_filter(column, Filter(field="id", op="gte", value=1))) == (
            "rows.id >= 1"
        )
        assert _sql(compile_filter(column, Filter(field="id", op="lte", value=9))) == (
            "rows.id <= 9"
        )
        between = compile_filter(column, Filter(field="id", op="between", value=[1, 9]))
        assert _sql(between) == "rows.id BETWEEN 1 AND 9"

    def test_between_needs_two_values(self) -> None:
        with pytest.raises(QueryValidationError, match="exactly two values"):
            compile_filter(_Row.__table__.c.id, Filter(field="id", op="between", value=[1]))

    def test_is_null(self) -> None:
        column = _Row.__table__.c.owner_id
        assert _sql(compile_filter(column, Filter(field="owner_id", op="is_null"))) == (
            "rows.owner_id IS NULL"
        )
        not_null = compile_filter(column, Filter(field="owner_id", op="is_null", value=False))
        assert _sql(not_null) == "rows.owner_id IS NOT NULL"
