"""
Plugin contracts.

AIPlugin is what the orchestrator runs; InsightGenerator is an optional
capability probed with isinstance() by PluginOrchestrator.generate_insights().
"""

from abc import ABC, abstractmethod

from enrichment_layer.models.analysis_models import ENRICHMENT_KEY, Insight, Record
from enrichment_layer.models.enums import PluginType


class AIPlugin(ABC):
    """
    Base class for enrichment plugins.

    Subclasses set the identity attributes and implement analyze(). The
    lifecycle hooks default to no-ops.

    Attributes:
        id: Unique plugin id (registry key)
        name: Display name
        version: Plugin version
        type: Kind of work performed
    """

    id: str
    name: str
    version: str = "1.0.0"
    type: PluginType = PluginType.ANALYZER

    @abstractmethod
    async def analyze(self, record: Record) -> Record:
        """
        Return an enriched copy of the record.

        The input record must not be mutated. Enrichment goes under the
        "ai_insights" key (see enrich()).
        """
        pass

    async def initialize(self) -> None:
        """Called on activation."""

    async def destroy(self) -> None:
        """Called on deactivation and on unregister of an active plugin."""

    @staticmethod
    def enrich(record: Record, **fields) -> Record:
        """Shallow copy of record with fields merged into its ai_insights namespace."""
        namespace = dict(record.get(ENRICHMENT_KEY) or {})
        namespace.update(fields)
        return {**record, ENRICHMENT_KEY: namespace}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, version={self.version})"


class InsightGenerator(ABC):
    """Optional capability: aggregate insights over a batch of records."""

    @abstractmethod
    async def generate_insights(self, records: list[Record]) -> list[Insight]:
        pass
