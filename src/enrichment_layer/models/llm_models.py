"""
LLM-specific data models for the request/response cycle.

These models are the provider-agnostic contract between the Model Gateway
and every provider implementation (Ollama, OpenAI-compatible, mock). They
are separate from the plugin/analysis models so that provider adapters can
evolve without touching the orchestration layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from enrichment_layer.models.enums import MessageRole


class Message(BaseModel):
    """
    A single conversation message.

    An ordered list of messages forms one request to a model provider.
    """
    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(..., description="system, user or assistant")
    content: str = Field(..., description="Message text")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content)


class InvocationOptions(BaseModel):
    """
    Per-call generation options.

    Every field is independently optional: None means "provider default".
    """
    model_config = ConfigDict(frozen=True)

    model: Optional[str] = Field(default=None, description="Model identifier (e.g. 'qwen2.5:7b')")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Maximum tokens to generate")
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Nucleus sampling parameter")
    stop_sequences: Optional[list[str]] = Field(default=None, description="Stop sequences for generation")
    timeout_ms: Optional[int] = Field(default=None, ge=1, description="Per-call timeout in milliseconds")

    def output_fields(self) -> Dict[str, Any]:
        """
        Fields that influence the generated output.

        Used to build cache fingerprints: timeout_ms changes how long we wait,
        not what the model produces, so it is left out.
        """
        return self.model_dump(exclude={"timeout_ms"}, exclude_none=True)


class TokenUsage(BaseModel):
    """Token accounting reported by a provider."""
    model_config = ConfigDict(frozen=True)

    prompt: int = Field(default=0, ge=0, description="Tokens in prompt")
    completion: int = Field(default=0, ge=0, description="Tokens in completion")
    total: int = Field(default=0, ge=0, description="Total tokens (prompt + completion)")


class InvocationResult(BaseModel):
    """
    Result of one successful provider call.

    Produced once per call and never mutated afterwards. Cached results are
    returned as the same instance.
    """
    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Generated text")
    model: str = Field(..., description="Model that produced the content")
    provider: str = Field(..., description="Provider identity that served the call")
    usage: Optional[TokenUsage] = Field(default=None, description="Token usage, when reported")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the result was produced",
    )
    duration_ms: int = Field(..., ge=0, description="Provider call latency in milliseconds")
    fallback_errors: list[str] = Field(
        default_factory=list,
        description="'provider: message' for every provider that failed before this one answered",
    )
