"""Built-in enrichment plugins."""

from enrichment_layer.plugins.builtin.priority import PriorityRule, PriorityScorerPlugin
from enrichment_layer.plugins.builtin.sentiment import SentimentAnalyzerPlugin

# Plugin id -> class, used by the factory to build BUILTIN_PLUGINS
BUILTIN_PLUGINS = {
    SentimentAnalyzerPlugin.id: SentimentAnalyzerPlugin,
    PriorityScorerPlugin.id: PriorityScorerPlugin,
}

__all__ = [
    "BUILTIN_PLUGINS",
    "PriorityRule",
    "PriorityScorerPlugin",
    "SentimentAnalyzerPlugin",
]
