"""
Enrichment plugins and their orchestrator.

Components:
- AIPlugin / InsightGenerator: Plugin contracts
- PluginOrchestrator: Registry, lifecycle and concurrent fan-out
- builtin: Sentiment analyzer and priority scorer
- exceptions: Orchestrator exceptions
"""

from enrichment_layer.plugins.base import AIPlugin, InsightGenerator
from enrichment_layer.plugins.orchestrator import PluginOrchestrator
from enrichment_layer.plugins.exceptions import (
    LifecycleError,
    NoPluginsAvailableError,
    PluginError,
    PluginNotFoundError,
    PluginTimeoutError,
)

__all__ = [
    "AIPlugin",
    "InsightGenerator",
    "PluginOrchestrator",
    "LifecycleError",
    "NoPluginsAvailableError",
    "PluginError",
    "PluginNotFoundError",
    "PluginTimeoutError",
]
