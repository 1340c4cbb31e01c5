"""
Priority scoring plugin.

Scores how urgent/important a record is on a 0-10 scale using the model
gateway, with a rule-based fallback (keywords, priority tags, VIP sender
domains, custom weighted rules) when the gateway fails.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from enrichment_layer.llm.exceptions import LLMError
from enrichment_layer.llm.gateway import ModelGateway
from enrichment_layer.models.analysis_models import ENRICHMENT_KEY, Insight, Record
from enrichment_layer.models.enums import InsightType, PluginType, PriorityLevel
from enrichment_layer.models.llm_models import InvocationOptions
from enrichment_layer.plugins.base import AIPlugin, InsightGenerator


logger = structlog.get_logger(__name__)

DEFAULT_HIGH_PRIORITY_KEYWORDS = ["urgent", "asap", "critical", "deadline", "emergency"]
EXCERPT_LIMIT = 500

SYSTEM_PROMPT = """You are an expert in task triage and productivity.
Assign a priority score to items (emails, tasks, documents).

Consider:
- Urgency (deadlines, urgent keywords)
- Importance (VIP author, client, strategic project)
- Impact (people affected, consequences)
- Effort versus value

Score scale (0-10):
- 0-2: low (can wait)
- 3-5: medium (important, not urgent)
- 6-8: high (urgent and important)
- 9-10: critical (urgent, important, blocking)

Return a JSON object with this structure:
{
  "score": number (0-10),
  "level": "critical" | "high" | "medium" | "low",
  "reasoning": "Short explanation of the score",
  "suggested_actions": ["Action 1", "Action 2"],
  "factors": [{"factor": "Name", "impact": number (0-10), "description": "Explanation"}]
}"""


class PriorityRule(BaseModel):
    """Adds weight to the score when pattern appears in the record text."""

    pattern: str
    weight: float


class PriorityFactor(BaseModel):
    factor: str
    impact: float
    description: str = ""


class PriorityScore(BaseModel):
    """Priority of one record, as returned by the model or the fallback rules."""

    score: float = Field(..., ge=0, le=10)
    level: PriorityLevel
    reasoning: str = ""
    suggested_actions: list[str] = Field(default_factory=list)
    factors: list[PriorityFactor] = Field(default_factory=list)


def _author(record: Record) -> Optional[str]:
    return record.get("author") or (record.get("metadata") or {}).get("author")


class PriorityScorerPlugin(AIPlugin, InsightGenerator):
    """Writes priority_score (0-1), priority_level and priority_reasoning into ai_insights."""

    id = "priority-scorer"
    name = "Priority Scorer"
    version = "1.0.0"
    type = PluginType.CLASSIFIER

    def __init__(
        self,
        gateway: ModelGateway,
        custom_rules: Optional[list[PriorityRule]] = None,
        vip_domains: Optional[list[str]] = None,
        high_priority_keywords: Optional[list[str]] = None,
        options: Optional[InvocationOptions] = None,
    ):
        self.gateway = gateway
        self.custom_rules = list(custom_rules or [])
        self.vip_domains = [d.lower() for d in vip_domains or []]
        self.high_priority_keywords = list(high_priority_keywords or DEFAULT_HIGH_PRIORITY_KEYWORDS)
        self.options = options or InvocationOptions(temperature=0.3, max_tokens=500)

    def configure(
        self,
        custom_rules: Optional[list[PriorityRule]] = None,
        vip_domains: Optional[list[str]] = None,
        high_priority_keywords: Optional[list[str]] = None,
    ) -> None:
        """Replace the given parts of the rule configuration."""
        if custom_rules is not None:
            self.custom_rules = list(custom_rules)
        if vip_domains is not None:
            self.vip_domains = [d.lower() for d in vip_domains]
        if high_priority_keywords is not None:
            self.high_priority_keywords = list(high_priority_keywords)
        logger.info("Plugin configuration updated", plugin_id=self.id)

    async def analyze(self, record: Record) -> Record:
        result = await self.score_priority(record)
        return self.enrich(
            record,
            priority_score=result.score / 10,
            priority_level=result.level.value,
            priority_reasoning=result.reasoning,
        )

    def build_context(self, record: Record) -> str:
        lines = [f"Type: {record.get('type', 'unknown')}", f"Title: {record.get('title') or ''}"]

        content = record.get("content") or ""
        if content:
            excerpt = content[:EXCERPT_LIMIT] + ("..." if len(content) > EXCERPT_LIMIT else "")
            lines.append(f"Content (excerpt): {excerpt}")
        tags = record.get("tags") or []
        if tags:
            lines.append(f"Tags: {', '.join(tags)}")
        author = _author(record)
        if author:
            lines.append(f"Author: {author}")
        if record.get("created_at"):
            lines.append(f"Created at: {record['created_at']}")

        if self.custom_rules:
            lines.append("\nCustom priority rules:")
            lines.extend(f'- Contains "{rule.pattern}" -> +{rule.weight}' for rule in self.custom_rules)
        return "\n".join(lines)

    async def score_priority(self, record: Record) -> PriorityScore:
        user_prompt = (
            "Assign a priority score to this item:\n\n"
            f"{self.build_context(record)}\n\n"
            "Return the JSON with score, level, reasoning, suggested_actions and factors."
        )
        try:
            return await self.gateway.complete_json(
                SYSTEM_PROMPT,
                user_prompt,
                self.options,
                response_model=PriorityScore,
            )
        except LLMError as e:
            logger.warning(
                "Priority model call failed, using rule fallback",
                plugin_id=self.id,
                record_id=record.get("id"),
                error_type=type(e).__name__,
                error=e.message,
            )
            return self.fallback_scoring(record)

    def fallback_scoring(self, record: Record) -> PriorityScore:
        """Rule-based score starting from 5 (medium), clamped to 0-10."""
        score = 5.0
        factors: list[PriorityFactor] = []
        text = f"{record.get('title') or ''} {record.get('content') or ''}".lower()

        for keyword in self.high_priority_keywords:
            if keyword.lower() in text:
                score += 2
                factors.append(PriorityFactor(factor="Urgent keyword", impact=2, description=f'Contains "{keyword}"'))

        tags = record.get("tags") or []
        if "#urgent" in tags:
            score += 3
            factors.append(PriorityFactor(factor="Tag #urgent", impact=3, description="Priority tag"))
        if "#critical" in tags:
            score += 4
            factors.append(PriorityFactor(factor="Tag #critical", impact=4, description="Critical tag"))

        author = _author(record)
        if author and "@" in author and self.vip_domains:
            domain = author.rsplit("@", 1)[1].lower()
            if domain in self.vip_domains:
                score += 2
                factors.append(PriorityFactor(factor="VIP author", impact=2, description=f"VIP domain (@{domain})"))

        for rule in self.custom_rules:
            if rule.pattern.lower() in text:
                score += rule.weight
                factors.append(PriorityFactor(
                    factor=f"Custom rule: {rule.pattern}",
                    impact=rule.weight,
                    description=f'Pattern "{rule.pattern}" matched',
                ))

        score = max(0.0, min(10.0, score))
        return PriorityScore(
            score=score,
            level=PriorityLevel.from_score(score),
            reasoning=(
                "Rule-based fallback score (model unavailable). Factors: "
                + (", ".join(f.factor for f in factors) or "none")
            ),
            suggested_actions=["Handle promptly", "Check the deadline"] if score >= 7 else [],
            factors=factors,
        )

    async def generate_insights(self, records: list[Record]) -> list[Insight]:
        if not records:
            return []

        levels: list[tuple[str, Optional[PriorityLevel]]] = []
        for record in records:
            score = (record.get(ENRICHMENT_KEY) or {}).get("priority_score")
            level = PriorityLevel.from_score(score * 10) if score is not None else None
            levels.append((str(record.get("id")), level))

        counts = {level.value: 0 for level in PriorityLevel}
        counts["unknown"] = 0
        for _, level in levels:
            counts[level.value if level else "unknown"] += 1

        insights: list[Insight] = []
        critical = counts[PriorityLevel.CRITICAL.value]
        if critical > 0:
            insights.append(Insight(
                type=InsightType.SUGGESTION,
                title=f"{critical} CRITICAL priority item(s)",
                description="Urgent action required",
                related_items=[rid for rid, level in levels if level == PriorityLevel.CRITICAL],
                priority=10,
                confidence=0.9,
                data={"count": critical},
            ))

        high_load = counts[PriorityLevel.HIGH.value] + critical
        if high_load > len(records) * 0.5:
            insights.append(Insight(
                type=InsightType.ANOMALY,
                title="High-priority workload overload",
                description=(
                    f"{high_load} high-priority items out of {len(records)} "
                    f"({round(high_load / len(records) * 100)}%)"
                ),
                priority=8,
                confidence=0.85,
                data=counts,
            ))

        return insights
