"""Boot wiring: build every registry once, let feature modules contribute,
then freeze everything before the first request is served."""

from __future__ import annotations

import tracemalloc
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from toolhub.commands.registry import CommandRegistry
from toolhub.config.settings import Settings, get_settings
from toolhub.data.catalog import ModelCatalog, discover_optional_providers
from toolhub.data.loader import ManifestLoader
from toolhub.data.provider_registry import ProviderRegistry
from toolhub.data.reader import EntityReader
from toolhub.infra.logging import setup_logging
from toolhub.tools.builtins import register_builtins
from toolhub.tools.enrichers import TeamContextEnricher, UserHistoryEnricher
from toolhub.tools.enrichment import EnrichmentPipeline
from toolhub.tools.events import EventDispatcher, ToolExecuted, ToolFailed, log_tool_event
from toolhub.tools.executor import RetryAdvisor, ToolExecutor
from toolhub.tools.orchestrator import ToolOrchestrator
from toolhub.tools.registry import ToolRegistry
from toolhub.tracking.database import create_db_engine, ensure_schema, make_session_factory
from toolhub.tracking.store import ExecutionHistoryStore, ExecutionRecorder

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from toolhub.tools.context import ToolContext
    from toolhub.tools.result import ToolResult

logger = structlog.get_logger()


@dataclass
class Runtime:
    settings: Settings
    tools: ToolRegistry
    commands: CommandRegistry
    providers: ProviderRegistry
    catalog: ModelCatalog
    events: EventDispatcher
    enrichment: EnrichmentPipeline
    executor: ToolExecutor
    orchestrator: ToolOrchestrator
    reader: EntityReader | None = None
    history: ExecutionHistoryStore | None = None
    engine: AsyncEngine | None = None

    async def invoke(
        self,
        tool_name: str,
        arguments: dict,
        context: ToolContext,
        *,
        enrich: bool = True,
    ) -> ToolResult:
        """Enrich the context, then run the tool with its prerequisites."""
        if enrich:
            context = await self.enrichment.enrich(context)
        return await self.orchestrator.execute_with_dependencies(tool_name, arguments, context)

    async def aclose(self) -> None:
        await self.events.drain()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("runtime_closed")


# Boot hook for a feature module: registers its models, tools, commands,
# providers or enrichers on the runtime before the registries are frozen.
ModuleHook = Callable[[Runtime], None]


async def build_runtime(
    settings: Settings | None = None,
    *,
    modules: Iterable[ModuleHook] = (),
    db_session_factory: async_sessionmaker[AsyncSession] | None = None,
    connect_db: bool = True,
    retry_advisor: RetryAdvisor | None = None,
    configure_logging: bool = True,
) -> Runtime:
    """Construct and freeze the runtime.

    With connect_db=True and no session factory, the database is mandatory:
    startup fails if the engine or schema is unavailable. Without a database
    the runtime has no history enrichers, no execution recording and no
    data.read tool.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(
            json_output=settings.logging.json_output, log_level=settings.logging.level
        )

    if settings.tools.trace_memory and not tracemalloc.is_tracing():
        tracemalloc.start()

    engine: AsyncEngine | None = None
    if db_session_factory is None and connect_db:
        engine = await create_db_engine(settings.database)
        await ensure_schema(engine, settings.database.schema_)
        db_session_factory = make_session_factory(engine)
        logger.info("db_connected")

    events = EventDispatcher()
    events.subscribe_all(log_tool_event)

    tools = ToolRegistry()
    providers = ProviderRegistry()
    catalog = ModelCatalog()
    enrichment = EnrichmentPipeline()

    history: ExecutionHistoryStore | None = None
    reader: EntityReader | None = None
    if db_session_factory is not None:
        history = ExecutionHistoryStore(db_session_factory)
        recorder = ExecutionRecorder(history)
        events.subscribe(ToolExecuted, recorder)
        events.subscribe(ToolFailed, recorder)
        enrichment.register(UserHistoryEnricher(history))
        enrichment.register(TeamContextEnricher(history))
        reader = EntityReader(providers, db_session_factory, settings.data_read)

    register_builtins(tools, reader=reader)

    executor = ToolExecutor(tools, events, settings.tools, retry_advisor=retry_advisor)
    runtime = Runtime(
        settings=settings,
        tools=tools,
        commands=CommandRegistry(),
        providers=providers,
        catalog=catalog,
        events=events,
        enrichment=enrichment,
        executor=executor,
        orchestrator=ToolOrchestrator(executor, tools, events, settings.tools),
        reader=reader,
        history=history,
        engine=engine,
    )

    for hook in modules:
        hook(runtime)

    # Compiled providers first so a manifest for the same entity replaces them.
    for provider in discover_optional_providers(catalog):
        providers.register(provider)
    ManifestLoader(settings.data_read.manifest_dir, catalog).load_into(providers)

    tools.freeze()
    runtime.commands.freeze()
    providers.freeze()
    catalog.freeze()
    enrichment.freeze()

    logger.info(
        "runtime_ready",
        tools=len(tools.names()),
        entities=providers.keys(),
        enrichers=[e.namespace for e in enrichment.enrichers],
        database=db_session_factory is not None,
    )
    return runtime
