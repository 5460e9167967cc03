"""Execution history: persistence of tool runs and the queries enrichers use."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlalchemy import distinct, func, select

from toolhub.tools.events import ToolExecuted, ToolFailed
from toolhub.tracking.models import ToolExecutionRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = structlog.get_logger()


@dataclass(frozen=True)
class ExecutionSummary:
    tool_name: str
    success: bool
    created_at: datetime


class ExecutionHistory(Protocol):
    """Read side consumed by the context enrichers."""

    async def recent_for_user(
        self, user_id: int | str, *, limit: int = 10
    ) -> list[ExecutionSummary]: ...

    async def count_for_user(self, user_id: int | str) -> int: ...

    async def recent_for_team(
        self, team_id: int | str, *, limit: int = 5
    ) -> list[ExecutionSummary]: ...

    async def count_for_team(self, team_id: int | str) -> int: ...

    async def unique_tools_for_team(self, team_id: int | str) -> int: ...


def _key(value: Any) -> str | None:
    return None if value is None else str(value)


class ExecutionHistoryStore:
    """PostgreSQL-backed ExecutionHistory plus the write path for events."""

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._db_factory = db_session_factory

    async def record(self, event: ToolExecuted | ToolFailed) -> None:
        """Persist one lifecycle event as a tool_executions row."""
        if isinstance(event, ToolExecuted):
            row = ToolExecutionRecord(
                tool_name=event.tool_name,
                user_id=_key(event.context.user_id),
                team_id=_key(event.context.team_id),
                success=event.result.success,
                error_code=event.result.error_code,
                error_message=event.result.error_message,
                duration_ms=event.duration * 1000,
                memory_bytes=event.memory_usage,
                retries=event.retries,
                trace_id=event.trace_id,
                arguments=event.arguments,
            )
        else:
            row = ToolExecutionRecord(
                tool_name=event.tool_name,
                user_id=_key(event.context.user_id),
                team_id=_key(event.context.team_id),
                success=False,
                error_code=event.error_code,
                error_message=event.error_message,
                error_type=event.error_type,
                duration_ms=event.duration * 1000,
                memory_bytes=event.memory_usage,
                retries=event.retries,
                trace_id=event.trace_id,
                arguments=event.arguments,
            )

        async with self._db_factory() as db:
            db.add(row)
            await db.commit()

    async def recent_for_user(
        self, user_id: int | str, *, limit: int = 10
    ) -> list[ExecutionSummary]:
        stmt = (
            select(
                ToolExecutionRecord.tool_name,
                ToolExecutionRecord.success,
                ToolExecutionRecord.created_at,
            )
            .where(ToolExecutionRecord.user_id == _key(user_id))
            .order_by(ToolExecutionRecord.created_at.desc(), ToolExecutionRecord.id.desc())
            .limit(limit)
        )
        return await self._summaries(stmt)

    async def count_for_user(self, user_id: int | str) -> int:
        stmt = select(func.count()).where(ToolExecutionRecord.user_id == _key(user_id))
        return await self._scalar(stmt)

    async def recent_for_team(
        self, team_id: int | str, *, limit: int = 5
    ) -> list[ExecutionSummary]:
        stmt = (
            select(
                ToolExecutionRecord.tool_name,
                ToolExecutionRecord.success,
                ToolExecutionRecord.created_at,
            )
            .where(ToolExecutionRecord.team_id == _key(team_id))
            .order_by(ToolExecutionRecord.created_at.desc(), ToolExecutionRecord.id.desc())
            .limit(limit)
        )
        return await self._summaries(stmt)

    async def count_for_team(self, team_id: int | str) -> int:
        stmt = select(func.count()).where(ToolExecutionRecord.team_id == _key(team_id))
        return await self._scalar(stmt)

    async def unique_tools_for_team(self, team_id: int | str) -> int:
        stmt = select(func.count(distinct(ToolExecutionRecord.tool_name))).where(
            ToolExecutionRecord.team_id == _key(team_id)
        )
        return await self._scalar(stmt)

    async def _summaries(self, stmt) -> list[ExecutionSummary]:
        async with self._db_factory() as db:
            rows = await db.execute(stmt)
            return [
                ExecutionSummary(
                    tool_name=row.tool_name, success=row.success, created_at=row.created_at
                )
                for row in rows
            ]

    async def _scalar(self, stmt) -> int:
        async with self._db_factory() as db:
            result = await db.execute(stmt)
            return int(result.scalar_one())


class ExecutionRecorder:
    """Event listener persisting ToolExecuted/ToolFailed into the history store."""

    def __init__(self, store: ExecutionHistoryStore) -> None:
        self._store = store

    async def __call__(self, event: ToolExecuted | ToolFailed) -> None:
        await self._store.record(event)
        logger.debug("tool_execution_recorded", tool=event.tool_name, trace_id=event.trace_id)
