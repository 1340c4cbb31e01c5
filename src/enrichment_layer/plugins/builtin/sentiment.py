"""
Sentiment analysis plugin.

Asks the model gateway for the sentiment and emotional tone of a record and
falls back to a keyword heuristic whenever the gateway fails. Batch insights
flag low morale, very negative messages and bursts of urgency.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from enrichment_layer.llm.exceptions import LLMError
from enrichment_layer.llm.gateway import ModelGateway
from enrichment_layer.models.analysis_models import ENRICHMENT_KEY, Insight, Record
from enrichment_layer.models.enums import InsightType, PluginType, SentimentLabel
from enrichment_layer.models.llm_models import InvocationOptions
from enrichment_layer.plugins.base import AIPlugin, InsightGenerator


logger = structlog.get_logger(__name__)

CONTENT_LIMIT = 1000  # chars sent to the model

POSITIVE_KEYWORDS = ["thank", "thanks", "excellent", "great", "perfect", "congratulations", "awesome", "well done"]
NEGATIVE_KEYWORDS = ["problem", "error", "bug", "broken", "blocked", "frustrated", "disappointed", "bad"]
URGENT_KEYWORDS = ["urgent", "asap", "immediately", "critical", "emergency", "right now"]
TOXIC_KEYWORDS = ["incompetent", "useless", "stupid", "idiot", "pathetic"]

FALLBACK_CONFIDENCE = 0.6

SYSTEM_PROMPT = """You are an expert in sentiment analysis.
Analyze the emotional tone of messages (emails, chats, documents).

Detect:
- Overall sentiment: positive, neutral, negative, urgent
- Emotional tones: frustration, joy, anger, anxiety, satisfaction, impatience, ...
- Toxicity: aggressive, condescending or insulting language (0-1)
- Perceived urgency (0-1)
- Your confidence in this analysis (0-1)

Be nuanced: an urgent message is not necessarily negative, and a direct tone
is not necessarily toxic.

Return a JSON object with this structure:
{
  "sentiment": "positive" | "neutral" | "negative" | "urgent",
  "sentiment_score": number (-1 to +1),
  "emotional_tones": ["tone1", "tone2"],
  "toxicity": number (0-1),
  "urgency": number (0-1),
  "confidence": number (0-1),
  "reasoning": "Short explanation"
}"""


class SentimentAnalysis(BaseModel):
    """Sentiment of one record, as returned by the model or the fallback."""

    sentiment: SentimentLabel
    sentiment_score: float = Field(..., ge=-1.0, le=1.0)
    emotional_tones: list[str] = Field(default_factory=list)
    toxicity: float = Field(default=0.0, ge=0.0, le=1.0)
    urgency: float = Field(default=0.0, ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


def record_text(record: Record) -> str:
    return f"{record.get('title') or ''}\n\n{record.get('content') or ''}".strip()


def score_to_label(score: Optional[float]) -> Optional[SentimentLabel]:
    """Bucket a -1..1 sentiment score. Very negative scores read as urgent."""
    if score is None:
        return None
    if score < -0.8:
        return SentimentLabel.URGENT
    if score < -0.3:
        return SentimentLabel.NEGATIVE
    if score > 0.3:
        return SentimentLabel.POSITIVE
    return SentimentLabel.NEUTRAL


class SentimentAnalyzerPlugin(AIPlugin, InsightGenerator):
    """Writes sentiment, sentiment_label, confidence and summary into ai_insights."""

    id = "sentiment-analyzer"
    name = "Sentiment Analyzer"
    version = "1.0.0"
    type = PluginType.ANALYZER

    def __init__(self, gateway: ModelGateway, options: Optional[InvocationOptions] = None):
        self.gateway = gateway
        self.options = options or InvocationOptions(temperature=0.2, max_tokens=300)

    async def initialize(self) -> None:
        logger.info("Plugin initialized", plugin_id=self.id)

    async def destroy(self) -> None:
        logger.info("Plugin destroyed", plugin_id=self.id)

    async def analyze(self, record: Record) -> Record:
        analysis = await self.analyze_sentiment(record)
        return self.enrich(
            record,
            sentiment=analysis.sentiment_score,
            sentiment_label=analysis.sentiment.value,
            confidence=analysis.confidence,
            summary=analysis.reasoning,
        )

    async def analyze_sentiment(self, record: Record) -> SentimentAnalysis:
        content = record_text(record)
        excerpt = content[:CONTENT_LIMIT] + ("..." if len(content) > CONTENT_LIMIT else "")
        user_prompt = (
            "Analyze the sentiment of this message:\n\n"
            f"---\n{excerpt}\n---\n\n"
            "Return the JSON with sentiment, sentiment_score, emotional_tones, "
            "toxicity, urgency, confidence and reasoning."
        )

        try:
            return await self.gateway.complete_json(
                SYSTEM_PROMPT,
                user_prompt,
                self.options,
                response_model=SentimentAnalysis,
            )
        except LLMError as e:
            logger.warning(
                "Sentiment model call failed, using keyword fallback",
                plugin_id=self.id,
                record_id=record.get("id"),
                error_type=type(e).__name__,
                error=e.message,
            )
            return self.fallback_analysis(content)

    @staticmethod
    def fallback_analysis(content: str) -> SentimentAnalysis:
        """Keyword heuristic used when no model answer is available."""
        text = content.lower()
        positive = sum(1 for kw in POSITIVE_KEYWORDS if kw in text)
        negative = sum(1 for kw in NEGATIVE_KEYWORDS if kw in text)
        urgent = sum(1 for kw in URGENT_KEYWORDS if kw in text)
        toxic = sum(1 for kw in TOXIC_KEYWORDS if kw in text)

        if urgent > 0:
            label, score = SentimentLabel.URGENT, 0.0
        elif positive > negative:
            label, score = SentimentLabel.POSITIVE, min(1.0, positive / 3)
        elif negative > positive:
            label, score = SentimentLabel.NEGATIVE, -min(1.0, negative / 3)
        else:
            label, score = SentimentLabel.NEUTRAL, 0.0

        tones = []
        if urgent:
            tones.append("urgency")
        if positive:
            tones.append("satisfaction")
        if negative:
            tones.append("frustration")
        if toxic:
            tones.append("aggressiveness")

        return SentimentAnalysis(
            sentiment=label,
            sentiment_score=score,
            emotional_tones=tones or ["neutral"],
            toxicity=min(1.0, toxic / 2),
            urgency=min(1.0, urgent / 2),
            confidence=FALLBACK_CONFIDENCE,
            reasoning=(
                f"Keyword fallback analysis: {positive} positive, {negative} negative, "
                f"{urgent} urgent, {toxic} toxic."
            ),
        )

    @staticmethod
    def _label_of(record: Record) -> Optional[SentimentLabel]:
        namespace = record.get(ENRICHMENT_KEY) or {}
        label = namespace.get("sentiment_label")
        if label is not None:
            try:
                return SentimentLabel(label)
            except ValueError:
                pass
        return score_to_label(namespace.get("sentiment"))

    async def generate_insights(self, records: list[Record]) -> list[Insight]:
        labelled = [(r, self._label_of(r)) for r in records]
        analyzed = [(r, label) for r, label in labelled if label is not None]
        if not analyzed:
            return []

        counts = {label.value: 0 for label in SentimentLabel}
        for _, label in analyzed:
            counts[label.value] += 1
        total = len(analyzed)
        insights: list[Insight] = []

        negative_ratio = counts[SentimentLabel.NEGATIVE.value] / total
        if negative_ratio > 0.4:
            insights.append(Insight(
                type=InsightType.TREND,
                title="Declining morale detected",
                description=(
                    f"{round(negative_ratio * 100)}% of analyzed messages are negative "
                    f"({counts[SentimentLabel.NEGATIVE.value]}/{total})"
                ),
                related_items=[
                    str(r.get("id")) for r, label in analyzed if label == SentimentLabel.NEGATIVE
                ][:10],
                priority=8,
                confidence=0.8,
                data=counts,
            ))

        very_negative = [
            r for r in records
            if ((r.get(ENRICHMENT_KEY) or {}).get("sentiment") or 0) < -0.7
        ]
        if very_negative:
            insights.append(Insight(
                type=InsightType.ANOMALY,
                title=f"{len(very_negative)} very negative message(s) detected",
                description="Potentially problematic language (sentiment < -0.7)",
                related_items=[str(r.get("id")) for r in very_negative],
                priority=9,
                confidence=0.85,
                data={"very_negative_count": len(very_negative)},
            ))

        urgent_count = counts[SentimentLabel.URGENT.value]
        if urgent_count > total * 0.3:
            insights.append(Insight(
                type=InsightType.SUGGESTION,
                title=f"{urgent_count} urgent message(s)",
                description="High load of urgent messages",
                related_items=[
                    str(r.get("id")) for r, label in analyzed if label == SentimentLabel.URGENT
                ],
                priority=7,
                confidence=0.9,
                data={"urgent_count": urgent_count},
            ))

        return insights
