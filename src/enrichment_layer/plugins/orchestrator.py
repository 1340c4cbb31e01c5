"""
Plugin orchestrator: registry, lifecycle and analysis fan-out.

Plugins are registered (known) and independently active (eligible for
fan-out). analyze() runs the selected plugins against one record, each
bounded by a timeout, isolates their failures and merges their enrichment
into a single record.

Usage:
    orchestrator = PluginOrchestrator()
    await orchestrator.register(SentimentAnalyzerPlugin(gateway))
    await orchestrator.activate("sentiment-analyzer")
    result = await orchestrator.analyze({"id": "1", "title": "Thanks!"})
"""

import asyncio
import time
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from enrichment_layer.logging_config import record_log_context
from enrichment_layer.models.analysis_models import (
    ENRICHMENT_KEY,
    INSIGHTS_KEY,
    AnalysisResult,
    AnalyzeOptions,
    Insight,
    PluginOutcome,
    Record,
    RegistryStats,
)
from enrichment_layer.monitoring.metrics import plugin_executions_total, plugin_latency_seconds
from enrichment_layer.plugins.base import AIPlugin, InsightGenerator
from enrichment_layer.plugins.exceptions import (
    LifecycleError,
    NoPluginsAvailableError,
    PluginNotFoundError,
    PluginTimeoutError,
)


logger = structlog.get_logger(__name__)


def _consume_outcome(task: asyncio.Task) -> None:
    # Abandoned tasks: retrieve the exception so asyncio does not report it as unhandled.
    if not task.cancelled():
        task.exception()


class PluginOrchestrator:
    """
    Registry and fan-out engine for enrichment plugins.

    Lifecycle operations (register, activate, deactivate, unregister) are
    serialized by an asyncio.Lock. analyze() snapshots the plugin set at
    entry and never re-reads registry state during the fan-out.

    Attributes:
        default_options: AnalyzeOptions used when analyze() gets none
    """

    def __init__(self, default_options: Optional[AnalyzeOptions] = None):
        self.default_options = default_options or AnalyzeOptions()
        # dict preserves registration order
        self._plugins: dict[str, AIPlugin] = {}
        self._active: set[str] = set()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def plugins(self) -> list[AIPlugin]:
        """Every registered plugin, in registration order."""
        return list(self._plugins.values())

    @property
    def active_plugins(self) -> list[AIPlugin]:
        """Active plugins, in registration order."""
        return [p for pid, p in self._plugins.items() if pid in self._active]

    def get_plugin(self, plugin_id: str) -> Optional[AIPlugin]:
        return self._plugins.get(plugin_id)

    def is_registered(self, plugin_id: str) -> bool:
        return plugin_id in self._plugins

    def is_active(self, plugin_id: str) -> bool:
        return plugin_id in self._active

    def stats(self) -> RegistryStats:
        return RegistryStats(
            total_plugins=len(self._plugins),
            active_plugins=len(self._active),
            inactive_plugins=len(self._plugins) - len(self._active),
            plugins=list(self._plugins),
        )

    def _require(self, plugin_id: str) -> AIPlugin:
        plugin = self._plugins.get(plugin_id)
        if plugin is None:
            raise PluginNotFoundError(plugin_id)
        return plugin

    async def _run_hook(self, plugin: AIPlugin, phase: str) -> None:
        try:
            await getattr(plugin, phase)()
        except Exception as e:
            logger.error(
                "Plugin lifecycle hook failed",
                plugin_id=plugin.id,
                phase=phase,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise LifecycleError(plugin.id, phase, str(e)) from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def register(self, plugin: AIPlugin) -> None:
        """
        Register a plugin (inactive).

        Registering an id that already exists replaces the previous instance;
        if that instance was active it is destroyed first and the new one
        starts inactive, at the end of the registration order.

        Raises:
            LifecycleError: The replaced instance's destroy() failed (registry unchanged)
        """
        async with self._lock:
            previous = self._plugins.get(plugin.id)
            if previous is not None:
                if plugin.id in self._active:
                    await self._run_hook(previous, "destroy")
                    self._active.discard(plugin.id)
                del self._plugins[plugin.id]
                logger.warning("Plugin replaced", plugin_id=plugin.id, version=plugin.version)

            self._plugins[plugin.id] = plugin
            logger.info(
                "Plugin registered",
                plugin_id=plugin.id,
                plugin_name=plugin.name,
                version=plugin.version,
                plugin_type=plugin.type.value,
            )

    async def activate(self, plugin_id: str) -> None:
        """
        Await the plugin's initialize() and mark it active.

        Raises:
            PluginNotFoundError: Unknown id
            LifecycleError: initialize() failed (plugin stays inactive)
        """
        async with self._lock:
            plugin = self._require(plugin_id)
            if plugin_id in self._active:
                logger.info("Plugin already active", plugin_id=plugin_id)
                return
            await self._run_hook(plugin, "initialize")
            self._active.add(plugin_id)
            logger.info("Plugin activated", plugin_id=plugin_id)

    async def deactivate(self, plugin_id: str) -> None:
        """
        Await the plugin's destroy() and mark it inactive. It stays registered.

        Raises:
            PluginNotFoundError: Unknown id
            LifecycleError: destroy() failed (plugin stays active)
        """
        async with self._lock:
            plugin = self._require(plugin_id)
            if plugin_id not in self._active:
                logger.info("Plugin already inactive", plugin_id=plugin_id)
                return
            await self._run_hook(plugin, "destroy")
            self._active.discard(plugin_id)
            logger.info("Plugin deactivated", plugin_id=plugin_id)

    async def unregister(self, plugin_id: str) -> bool:
        """
        Remove a plugin, destroying it first if active.

        Returns:
            True if the plugin was registered, False otherwise

        Raises:
            LifecycleError: destroy() failed (plugin stays registered and active)
        """
        async with self._lock:
            plugin = self._plugins.get(plugin_id)
            if plugin is None:
                logger.warning("Unregister of unknown plugin", plugin_id=plugin_id)
                return False
            if plugin_id in self._active:
                await self._run_hook(plugin, "destroy")
                self._active.discard(plugin_id)
            del self._plugins[plugin_id]
            logger.info("Plugin unregistered", plugin_id=plugin_id)
            return True

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _resolve(self, requested: Optional[list[str]]) -> list[AIPlugin]:
        """Plugin snapshot for one analyze() call, in registration order."""
        if requested is None:
            return self.active_plugins

        wanted = set(requested)
        unknown = wanted - self._plugins.keys()
        if unknown:
            logger.warning("Ignoring unregistered plugins", plugin_ids=sorted(unknown))
        return [p for pid, p in self._plugins.items() if pid in wanted]

    async def analyze(self, record: Record, options: Optional[AnalyzeOptions] = None) -> AnalysisResult:
        """
        Run the selected plugins against one record and merge their enrichment.

        Args:
            record: Domain record (never mutated)
            options: Plugin selection, parallelism, timeout and error policy

        Returns:
            AnalysisResult with one outcome per selected plugin

        Raises:
            NoPluginsAvailableError: The resolved plugin set is empty
            PluginTimeoutError: A plugin timed out and continue_on_error is False
            Exception: A plugin's own error when continue_on_error is False
        """
        with record_log_context(record):
            return await self._analyze(record, options or self.default_options)

    async def _analyze(self, record: Record, options: AnalyzeOptions) -> AnalysisResult:
        start_time = time.monotonic()

        selected = self._resolve(options.plugins)
        if not selected:
            raise NoPluginsAvailableError(options.plugins)

        logger.info(
            "Starting analysis",
            record_id=record.get("id"),
            plugins=[p.id for p in selected],
            parallel=options.parallel,
            timeout_ms=options.timeout_ms,
        )

        if options.parallel:
            outcomes = await self._run_parallel(selected, record, options)
        else:
            outcomes = await self._run_sequential(selected, record, options)

        enriched_record, insights = self._merge(record, [outcomes[p.id] for p in selected if p.id in outcomes])
        total_duration_ms = int((time.monotonic() - start_time) * 1000)

        result = AnalysisResult(
            record=record,
            enriched_record=enriched_record,
            outcomes=outcomes,
            insights=insights,
            total_duration_ms=total_duration_ms,
        )
        logger.info(
            "Analysis completed",
            record_id=record.get("id"),
            succeeded=result.succeeded,
            failed=result.failed,
            total_duration_ms=total_duration_ms,
        )
        return result

    @staticmethod
    async def _invoke(plugin: AIPlugin, record: Record) -> Record:
        return await plugin.analyze(record)

    def _launch(self, plugin: AIPlugin, record: Record, finished: dict[str, float]) -> asyncio.Task:
        task = asyncio.create_task(self._invoke(plugin, record))
        task.add_done_callback(lambda _t, pid=plugin.id: finished.setdefault(pid, time.monotonic()))
        return task

    @staticmethod
    def _abandon(tasks: list[asyncio.Task]) -> None:
        """Best-effort cancellation; the tasks are never awaited."""
        for task in tasks:
            task.cancel()
            task.add_done_callback(_consume_outcome)

    async def _run_parallel(
        self,
        selected: list[AIPlugin],
        record: Record,
        options: AnalyzeOptions,
    ) -> dict[str, PluginOutcome]:
        started = time.monotonic()
        finished: dict[str, float] = {}
        tasks = {plugin.id: self._launch(plugin, record, finished) for plugin in selected}

        try:
            done, pending = await asyncio.wait(
                tasks.values(),
                timeout=options.timeout_ms / 1000.0,
                return_when=asyncio.ALL_COMPLETED if options.continue_on_error else asyncio.FIRST_EXCEPTION,
            )
        except asyncio.CancelledError:
            self._abandon([t for t in tasks.values() if not t.done()])
            raise

        # Fail-fast stopped early: pending plugins were interrupted, not timed out.
        aborted = not options.continue_on_error and any(
            not t.cancelled() and t.exception() is not None for t in done
        )

        outcomes: dict[str, PluginOutcome] = {}
        failure: Optional[BaseException] = None
        for plugin in selected:
            task = tasks[plugin.id]
            if task in done:
                elapsed_ms = int((finished.get(plugin.id, time.monotonic()) - started) * 1000)
                outcome, error = self._settle(plugin.id, task, elapsed_ms)
                if error is not None and failure is None:
                    failure = error
            elif not aborted:
                outcome = self._timeout_outcome(plugin.id, options.timeout_ms)
            else:
                continue
            outcomes[plugin.id] = outcome

        if pending:
            self._abandon(list(pending))

        if not options.continue_on_error:
            if failure is not None:
                raise failure
            if pending:
                timed_out = next(p.id for p in selected if tasks[p.id] in pending)
                raise PluginTimeoutError(timed_out, options.timeout_ms)

        return outcomes

    async def _run_sequential(
        self,
        selected: list[AIPlugin],
        record: Record,
        options: AnalyzeOptions,
    ) -> dict[str, PluginOutcome]:
        outcomes: dict[str, PluginOutcome] = {}
        for plugin in selected:
            started = time.monotonic()
            finished: dict[str, float] = {}
            task = self._launch(plugin, record, finished)
            try:
                done, _ = await asyncio.wait({task}, timeout=options.timeout_ms / 1000.0)
            except asyncio.CancelledError:
                self._abandon([task])
                raise

            if task in done:
                elapsed_ms = int((finished.get(plugin.id, time.monotonic()) - started) * 1000)
                outcome, error = self._settle(plugin.id, task, elapsed_ms)
            else:
                self._abandon([task])
                outcome = self._timeout_outcome(plugin.id, options.timeout_ms)
                error = PluginTimeoutError(plugin.id, options.timeout_ms)

            outcomes[plugin.id] = outcome
            if error is not None and not options.continue_on_error:
                raise error
        return outcomes

    def _settle(
        self,
        plugin_id: str,
        task: asyncio.Task,
        elapsed_ms: int,
    ) -> tuple[PluginOutcome, Optional[BaseException]]:
        """Turn a finished task into an outcome (and the error, if it failed)."""
        plugin_latency_seconds.labels(plugin=plugin_id).observe(elapsed_ms / 1000.0)

        if task.cancelled():
            error: Optional[BaseException] = asyncio.CancelledError(f"Plugin {plugin_id} was cancelled")
        else:
            error = task.exception()

        if error is None:
            enriched = task.result()
            if isinstance(enriched, dict):
                plugin_executions_total.labels(plugin=plugin_id, outcome="success").inc()
                return (
                    PluginOutcome(
                        plugin_id=plugin_id,
                        success=True,
                        enriched_record=enriched,
                        duration_ms=elapsed_ms,
                    ),
                    None,
                )
            error = TypeError(f"Plugin {plugin_id} returned {type(enriched).__name__}, expected a record")

        plugin_executions_total.labels(plugin=plugin_id, outcome="error").inc()
        logger.warning(
            "Plugin analysis failed",
            plugin_id=plugin_id,
            error_type=type(error).__name__,
            error=str(error),
            duration_ms=elapsed_ms,
        )
        return (
            PluginOutcome(
                plugin_id=plugin_id,
                success=False,
                error=str(error),
                error_type=type(error).__name__,
                duration_ms=elapsed_ms,
            ),
            error,
        )

    @staticmethod
    def _timeout_outcome(plugin_id: str, timeout_ms: int) -> PluginOutcome:
        plugin_executions_total.labels(plugin=plugin_id, outcome="timeout").inc()
        logger.warning("Plugin analysis timed out", plugin_id=plugin_id, timeout_ms=timeout_ms)
        return PluginOutcome(
            plugin_id=plugin_id,
            success=False,
            error=f"Timeout after {timeout_ms}ms",
            error_type=PluginTimeoutError.__name__,
            timed_out=True,
            duration_ms=timeout_ms,
        )

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def _new_insights(original: list[Any], returned: list[Any]) -> list[Any]:
        # Plugins usually copy the incoming namespace, so their list starts with the original one.
        if returned[: len(original)] == original:
            return returned[len(original):]
        return returned

    @staticmethod
    def _to_insight(item: Any) -> Optional[Insight]:
        if isinstance(item, Insight):
            return item
        try:
            return Insight.model_validate(item)
        except ValidationError as e:
            logger.warning("Dropping malformed plugin insight", error_count=e.error_count())
            return None

    def _merge(self, record: Record, outcomes: list[PluginOutcome]) -> tuple[Record, list[Insight]]:
        """
        Shallow-merge successful plugins' ai_insights namespaces, in resolved order.

        Keys are last-write-wins except the insights list, which is concatenated.
        """
        enriched = dict(record)
        original_namespace = record.get(ENRICHMENT_KEY) or {}
        original_insights = list(original_namespace.get(INSIGHTS_KEY) or [])

        namespace = dict(original_namespace)
        collected: list[Any] = []
        merged_any = False

        for outcome in outcomes:
            if not outcome.success or outcome.enriched_record is None:
                continue
            plugin_namespace = outcome.enriched_record.get(ENRICHMENT_KEY)
            if not isinstance(plugin_namespace, dict):
                continue
            merged_any = True
            for key, value in plugin_namespace.items():
                if key == INSIGHTS_KEY:
                    collected.extend(self._new_insights(original_insights, list(value or [])))
                else:
                    namespace[key] = value

        if merged_any:
            if original_insights or collected:
                namespace[INSIGHTS_KEY] = original_insights + collected
            enriched[ENRICHMENT_KEY] = namespace

        insights = [i for i in (self._to_insight(item) for item in collected) if i is not None]
        return enriched, sorted(insights, key=lambda i: -i.priority)

    async def generate_insights(self, records: list[Record]) -> list[Insight]:
        """
        Collect insights from every active plugin able to generate them.

        A failing plugin is logged and skipped. The combined list is stably
        sorted by descending priority, so ties keep plugin order.
        """
        insights: list[Insight] = []
        for plugin in self.active_plugins:
            if not isinstance(plugin, InsightGenerator):
                continue
            try:
                produced = await plugin.generate_insights(records)
            except Exception as e:
                logger.error(
                    "Insight generation failed",
                    plugin_id=plugin.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            insights.extend(produced)

        logger.info("Insights generated", records=len(records), insights=len(insights))
        return sorted(insights, key=lambda i: -i.priority)
