"""
Unit tests for PluginOrchestrator: lifecycle, fan-out, timeouts and aggregation.
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from enrichment_layer.models.analysis_models import AnalyzeOptions, Insight
from enrichment_layer.models.enums import InsightType
from enrichment_layer.plugins.base import AIPlugin, InsightGenerator
from enrichment_layer.plugins.exceptions import (
    LifecycleError,
    NoPluginsAvailableError,
    PluginNotFoundError,
    PluginTimeoutError,
)
from enrichment_layer.plugins.orchestrator import PluginOrchestrator


RECORD = {"id": "r1", "title": "Quarterly report"}


async def build(*plugins, activate=True) -> PluginOrchestrator:
    orchestrator = PluginOrchestrator()
    for plugin in plugins:
        await orchestrator.register(plugin)
        if activate:
            await orchestrator.activate(plugin.id)
    return orchestrator


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_register_then_activate(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        plugin.initialize = AsyncMock()
        orchestrator = PluginOrchestrator()

        await orchestrator.register(plugin)
        assert orchestrator.is_registered("a")
        assert not orchestrator.is_active("a")

        await orchestrator.activate("a")
        assert orchestrator.is_active("a")
        plugin.initialize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_activate_unknown_plugin(self):
        orchestrator = PluginOrchestrator()
        with pytest.raises(PluginNotFoundError):
            await orchestrator.activate("ghost")
        with pytest.raises(PluginNotFoundError):
            await orchestrator.deactivate("ghost")

    @pytest.mark.asyncio
    async def test_activate_twice_is_noop(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        plugin.initialize = AsyncMock()
        orchestrator = await build(plugin)

        await orchestrator.activate("a")
        plugin.initialize.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deactivate_keeps_registration(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        plugin.destroy = AsyncMock()
        orchestrator = await build(plugin)

        await orchestrator.deactivate("a")
        assert orchestrator.is_registered("a")
        assert not orchestrator.is_active("a")
        plugin.destroy.assert_awaited_once()

        await orchestrator.deactivate("a")
        plugin.destroy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_failure_leaves_plugin_inactive(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        cause = RuntimeError("no model")
        plugin.initialize = AsyncMock(side_effect=cause)
        orchestrator = PluginOrchestrator()
        await orchestrator.register(plugin)

        with pytest.raises(LifecycleError) as exc_info:
            await orchestrator.activate("a")

        assert exc_info.value.phase == "initialize"
        assert exc_info.value.plugin_id == "a"
        assert exc_info.value.__cause__ is cause
        assert orchestrator.is_registered("a")
        assert not orchestrator.is_active("a")

    @pytest.mark.asyncio
    async def test_destroy_failure_leaves_plugin_active(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        plugin.destroy = AsyncMock(side_effect=RuntimeError("stuck"))
        orchestrator = await build(plugin)

        with pytest.raises(LifecycleError) as exc_info:
            await orchestrator.deactivate("a")
        assert exc_info.value.phase == "destroy"
        assert orchestrator.is_active("a")

        with pytest.raises(LifecycleError):
            await orchestrator.unregister("a")
        assert orchestrator.is_registered("a")

    @pytest.mark.asyncio
    async def test_unregister_destroys_active_plugin(self, static_plugin_factory):
        plugin = static_plugin_factory("a")
        plugin.destroy = AsyncMock()
        orchestrator = await build(plugin)

        assert await orchestrator.unregister("a") is True
        plugin.destroy.assert_awaited_once()
        assert not orchestrator.is_registered("a")
        assert not orchestrator.is_active("a")
        assert await orchestrator.unregister("a") is False

    @pytest.mark.asyncio
    async def test_reregister_replaces_and_deactivates(self, static_plugin_factory):
        old = static_plugin_factory("a", {"version": 1})
        old.destroy = AsyncMock()
        orchestrator = await build(old)

        new = static_plugin_factory("a", {"version": 2})
        await orchestrator.register(new)

        old.destroy.assert_awaited_once()
        assert orchestrator.get_plugin("a") is new
        assert not orchestrator.is_active("a")

    @pytest.mark.asyncio
    async def test_stats_and_listings(self, static_plugin_factory):
        a, b = static_plugin_factory("a"), static_plugin_factory("b")
        orchestrator = await build(a, b, activate=False)
        await orchestrator.activate("b")

        stats = orchestrator.stats()
        assert (stats.total_plugins, stats.active_plugins, stats.inactive_plugins) == (2, 1, 1)
        assert stats.plugins == ["a", "b"]
        assert orchestrator.plugins == [a, b]
        assert orchestrator.active_plugins == [b]
        assert orchestrator.get_plugin("missing") is None


# ============================================================================
# Plugin selection
# ============================================================================


class TestSelection:

    @pytest.mark.asyncio
    async def test_no_active_plugins(self, static_plugin_factory):
        orchestrator = await build(static_plugin_factory("a"), activate=False)
        with pytest.raises(NoPluginsAvailableError):
            await orchestrator.analyze(RECORD)

    @pytest.mark.asyncio
    async def test_explicit_list_intersects_registered(self, static_plugin_factory):
        """Explicit ids run even when inactive; unknown ids are ignored."""
        orchestrator = await build(static_plugin_factory("a"), static_plugin_factory("b"), activate=False)

        result = await orchestrator.analyze(RECORD, AnalyzeOptions(plugins=["b", "ghost"]))
        assert list(result.outcomes) == ["b"]

    @pytest.mark.asyncio
    async def test_explicit_list_of_unknown_ids(self, static_plugin_factory):
        orchestrator = await build(static_plugin_factory("a"))
        with pytest.raises(NoPluginsAvailableError):
            await orchestrator.analyze(RECORD, AnalyzeOptions(plugins=["ghost"]))

    @pytest.mark.asyncio
    async def test_outcomes_follow_registration_order(self, static_plugin_factory):
        orchestrator = await build(static_plugin_factory("z"), static_plugin_factory("a"))
        result = await orchestrator.analyze(RECORD, AnalyzeOptions(plugins=["a", "z"]))
        assert list(result.outcomes) == ["z", "a"]


# ============================================================================
# Parallel fan-out
# ============================================================================


class TestParallel:

    @pytest.mark.asyncio
    async def test_runs_concurrently(self, static_plugin_factory):
        plugins = [static_plugin_factory(f"p{i}", delay=0.1) for i in range(3)]
        orchestrator = await build(*plugins)

        start = time.monotonic()
        result = await orchestrator.analyze(RECORD)
        elapsed = time.monotonic() - start

        assert result.succeeded == ["p0", "p1", "p2"]
        assert elapsed < 0.25

    @pytest.mark.asyncio
    async def test_partial_failure_is_isolated(self, static_plugin_factory, failing_plugin_factory):
        """One plugin raises: the others still succeed and the failure is recorded."""
        orchestrator = await build(
            static_plugin_factory("good", {"mood": "positive"}),
            failing_plugin_factory("bad"),
        )

        result = await orchestrator.analyze(RECORD)

        assert result.outcomes["good"].success is True
        bad = result.outcomes["bad"]
        assert bad.success is False
        assert bad.error == "plugin exploded"
        assert bad.error_type == "RuntimeError"
        assert bad.timed_out is False
        assert result.enriched_record["ai_insights"] == {"mood": "positive"}

    @pytest.mark.asyncio
    async def test_sentiment_and_slow_scenario(self, static_plugin_factory, hanging_plugin_factory):
        """A plugin that never resolves times out without delaying the others."""
        slow = hanging_plugin_factory("slow")
        orchestrator = await build(static_plugin_factory("sentiment", {"mood": "positive"}), slow)

        start = time.monotonic()
        result = await orchestrator.analyze(RECORD, AnalyzeOptions(timeout_ms=50))
        elapsed = time.monotonic() - start

        assert elapsed < 0.5
        assert result.outcomes["sentiment"].success is True
        assert result.outcomes["slow"].success is False
        assert result.outcomes["slow"].timed_out is True
        assert result.outcomes["slow"].error == "Timeout after 50ms"
        assert result.enriched_record["ai_insights"]["mood"] == "positive"

        await asyncio.sleep(0.01)
        assert slow.cancelled is True

    @pytest.mark.asyncio
    async def test_fail_fast_reraises_plugin_error(self, static_plugin_factory, failing_plugin_factory):
        error = ValueError("bad input")
        slow = static_plugin_factory("slow", delay=5)
        orchestrator = await build(slow, failing_plugin_factory("bad", error))

        start = time.monotonic()
        with pytest.raises(ValueError) as exc_info:
            await orchestrator.analyze(RECORD, AnalyzeOptions(continue_on_error=False))

        assert exc_info.value is error
        assert time.monotonic() - start < 1

    @pytest.mark.asyncio
    async def test_fail_fast_timeout(self, hanging_plugin_factory, static_plugin_factory):
        orchestrator = await build(static_plugin_factory("ok"), hanging_plugin_factory("slow"))
        with pytest.raises(PluginTimeoutError) as exc_info:
            await orchestrator.analyze(RECORD, AnalyzeOptions(timeout_ms=30, continue_on_error=False))
        assert exc_info.value.plugin_id == "slow"
        assert exc_info.value.timeout_ms == 30

    @pytest.mark.asyncio
    async def test_non_record_result_is_a_failure(self):
        class Broken(AIPlugin):
            id = "broken"
            name = "Broken"

            async def analyze(self, record):
                return None

        orchestrator = await build(Broken())
        result = await orchestrator.analyze(RECORD)
        assert result.outcomes["broken"].error_type == "TypeError"


# ============================================================================
# Sequential mode
# ============================================================================


class TestSequential:

    @pytest.mark.asyncio
    async def test_runs_in_registration_order(self, static_plugin_factory):
        calls = []
        orchestrator = await build(
            static_plugin_factory("first", calls=calls, delay=0.02),
            static_plugin_factory("second", calls=calls),
            static_plugin_factory("third", calls=calls),
        )
        await orchestrator.analyze(RECORD, AnalyzeOptions(parallel=False))
        assert calls == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_abort_on_first_failure(self, static_plugin_factory, failing_plugin_factory):
        calls = []
        orchestrator = await build(
            failing_plugin_factory("bad"),
            static_plugin_factory("after", calls=calls),
        )
        with pytest.raises(RuntimeError, match="plugin exploded"):
            await orchestrator.analyze(RECORD, AnalyzeOptions(parallel=False, continue_on_error=False))
        assert calls == []

    @pytest.mark.asyncio
    async def test_continue_after_failure(self, static_plugin_factory, failing_plugin_factory, hanging_plugin_factory):
        orchestrator = await build(
            failing_plugin_factory("bad"),
            hanging_plugin_factory("slow"),
            static_plugin_factory("good"),
        )
        result = await orchestrator.analyze(RECORD, AnalyzeOptions(parallel=False, timeout_ms=30))

        assert result.failed == ["bad", "slow"]
        assert result.succeeded == ["good"]
        assert result.outcomes["slow"].timed_out is True

    @pytest.mark.asyncio
    async def test_sequential_timeout_fail_fast(self, hanging_plugin_factory):
        orchestrator = await build(hanging_plugin_factory("slow"))
        with pytest.raises(PluginTimeoutError, match="Timeout after 20ms"):
            await orchestrator.analyze(RECORD, AnalyzeOptions(parallel=False, timeout_ms=20, continue_on_error=False))


# ============================================================================
# Aggregation
# ============================================================================


class TestAggregation:

    @pytest.mark.asyncio
    async def test_last_write_wins_in_registration_order(self, static_plugin_factory):
        """Merge order is resolved order even when the later plugin finishes first."""
        orchestrator = await build(
            static_plugin_factory("first", {"label": "from-first", "a": 1}, delay=0.05),
            static_plugin_factory("second", {"label": "from-second", "b": 2}),
        )
        result = await orchestrator.analyze(RECORD)

        assert result.enriched_record["ai_insights"] == {"label": "from-second", "a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_original_record_untouched(self, static_plugin_factory):
        record = {"id": "r1", "ai_insights": {"existing": True}}
        orchestrator = await build(static_plugin_factory("a", {"new": 1}))

        result = await orchestrator.analyze(record)

        assert record == {"id": "r1", "ai_insights": {"existing": True}}
        assert result.record == record
        assert result.enriched_record["ai_insights"] == {"existing": True, "new": 1}

    @pytest.mark.asyncio
    async def test_insight_lists_are_concatenated(self, static_plugin_factory):
        low = {"type": "trend", "title": "low", "priority": 1}
        high = {"type": "anomaly", "title": "high", "priority": 9}
        existing = {"type": "cluster", "title": "existing", "priority": 5}
        record = {"id": "r1", "ai_insights": {"insights": [existing]}}

        orchestrator = await build(
            static_plugin_factory("a", {"insights": [existing, low]}),
            static_plugin_factory("b", {"insights": [high]}),
        )
        result = await orchestrator.analyze(record)

        assert result.enriched_record["ai_insights"]["insights"] == [existing, low, high]
        assert [i.title for i in result.insights] == ["high", "low"]

    @pytest.mark.asyncio
    async def test_failures_contribute_nothing(self, static_plugin_factory, failing_plugin_factory):
        orchestrator = await build(failing_plugin_factory("bad"))
        result = await orchestrator.analyze(RECORD)
        assert result.enriched_record == RECORD
        assert result.insights == []


# ============================================================================
# Insight generation
# ============================================================================


class InsightPlugin(AIPlugin, InsightGenerator):

    def __init__(self, plugin_id, insights=None, error=None):
        self.id = plugin_id
        self.name = plugin_id
        self.insights = insights or []
        self.error = error

    async def analyze(self, record):
        return record

    async def generate_insights(self, records):
        if self.error:
            raise self.error
        return self.insights


def insight(title, priority):
    return Insight(type=InsightType.SUGGESTION, title=title, priority=priority)


class TestGenerateInsights:

    @pytest.mark.asyncio
    async def test_stable_sort_by_descending_priority(self):
        orchestrator = await build(
            InsightPlugin("a", [insight("a-low", 1), insight("a-tie", 5)]),
            InsightPlugin("b", [insight("b-tie", 5), insight("b-high", 9)]),
        )
        insights = await orchestrator.generate_insights([RECORD])
        assert [i.title for i in insights] == ["b-high", "a-tie", "b-tie", "a-low"]

    @pytest.mark.asyncio
    async def test_failing_plugin_is_skipped(self):
        orchestrator = await build(
            InsightPlugin("broken", error=RuntimeError("boom")),
            InsightPlugin("ok", [insight("kept", 3)]),
        )
        insights = await orchestrator.generate_insights([RECORD])
        assert [i.title for i in insights] == ["kept"]

    @pytest.mark.asyncio
    async def test_only_active_generators(self, static_plugin_factory):
        inactive = InsightPlugin("inactive", [insight("hidden", 10)])
        orchestrator = await build(static_plugin_factory("plain"), InsightPlugin("on", [insight("shown", 1)]))
        await orchestrator.register(inactive)

        insights = await orchestrator.generate_insights([RECORD])
        assert [i.title for i in insights] == ["shown"]


# ============================================================================
# Caller cancellation
# ============================================================================


class TestCallerCancellation:
    """Cancelling analyze() cancels the plugin tasks it started."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("parallel", [True, False])
    async def test_plugins_cancelled_with_analyze(self, hanging_plugin_factory, static_plugin_factory, parallel):
        slow = hanging_plugin_factory("slow")
        orchestrator = await build(static_plugin_factory("quick"), slow)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                orchestrator.analyze(RECORD, AnalyzeOptions(parallel=parallel)),
                0.05,
            )

        await asyncio.sleep(0.01)
        assert slow.cancelled is True
