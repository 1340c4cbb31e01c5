"""
Data models for plugin orchestration.

Domain records are plain dicts (their shape belongs to the external source);
everything the orchestrator produces around them is modelled here.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from enrichment_layer.models.enums import InsightType


Record = Dict[str, Any]

# Namespace key under which plugins write their enrichment.
ENRICHMENT_KEY = "ai_insights"

# Key inside the enrichment namespace holding per-plugin insights (a list).
INSIGHTS_KEY = "insights"


class Insight(BaseModel):
    """
    An observation produced by a plugin about one or more records.

    Higher priority sorts first when insights are aggregated.
    """
    model_config = ConfigDict(frozen=True)

    type: InsightType = Field(..., description="Insight category")
    title: str = Field(..., description="Short headline")
    description: str = Field(default="", description="Human readable explanation")
    related_items: list[str] = Field(default_factory=list, description="Ids of records involved")
    priority: float = Field(default=0, description="Ranking weight (higher first)")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0, description="Confidence in the insight")
    data: Dict[str, Any] = Field(default_factory=dict, description="Plugin-specific payload")


class AnalyzeOptions(BaseModel):
    """
    Options for one orchestrator fan-out.

    plugins=None means "every active plugin".
    """
    model_config = ConfigDict(frozen=True)

    plugins: Optional[list[str]] = Field(default=None, description="Explicit plugin ids to run")
    parallel: bool = Field(default=True, description="Run plugins concurrently")
    timeout_ms: int = Field(default=30000, ge=1, description="Per-plugin timeout in milliseconds")
    continue_on_error: bool = Field(default=True, description="Record failures instead of raising")


class PluginOutcome(BaseModel):
    """Outcome of running a single plugin against a record."""
    model_config = ConfigDict(frozen=True)

    plugin_id: str
    success: bool
    enriched_record: Optional[Record] = Field(default=None, description="Plugin output on success")
    error: Optional[str] = Field(default=None, description="Error message on failure")
    error_type: Optional[str] = Field(default=None, description="Exception class name on failure")
    timed_out: bool = Field(default=False, description="True when the failure was a timeout")
    duration_ms: int = Field(..., ge=0)


class AnalysisResult(BaseModel):
    """
    Aggregate result of one orchestrator call.

    Every selected plugin has an entry in outcomes, failed ones included, so
    callers can tell "not run" from "failed" from "timed out".
    """
    model_config = ConfigDict(frozen=True)

    record: Record = Field(..., description="Original record, untouched")
    enriched_record: Record = Field(..., description="Shallow copy with merged enrichment")
    outcomes: Dict[str, PluginOutcome] = Field(default_factory=dict)
    insights: list[Insight] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_duration_ms: int = Field(..., ge=0)

    @property
    def succeeded(self) -> list[str]:
        return [pid for pid, outcome in self.outcomes.items() if outcome.success]

    @property
    def failed(self) -> list[str]:
        return [pid for pid, outcome in self.outcomes.items() if not outcome.success]


class RegistryStats(BaseModel):
    """Snapshot of orchestrator registry state."""

    total_plugins: int
    active_plugins: int
    inactive_plugins: int
    plugins: list[str]
