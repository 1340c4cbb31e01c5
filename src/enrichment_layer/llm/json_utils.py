"""
Parsing of JSON answers returned as free text by a model.

Models frequently wrap JSON in markdown fences (```json ... ```) even when told
not to; fences are stripped before parsing. Malformed output is a hard
failure (ParseError carrying the raw content).
"""

import json
import re
from typing import Any, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from enrichment_layer.llm.exceptions import ParseError


logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_code_fences(content: str) -> str:
    """
    Remove markdown code fences from a model answer.

    Examples:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> strip_code_fences('{"a": 1}')
        '{"a": 1}'
    """
    return _FENCE_PATTERN.sub("", content).strip()


def parse_json_content(content: str, provider: Optional[str] = None) -> Any:
    """
    Parse a model answer as JSON.

    Args:
        content: Raw text produced by the model
        provider: Provider that produced it (for error context)

    Returns:
        Parsed JSON value

    Raises:
        ParseError: If content is empty or not valid JSON after fence stripping
    """
    cleaned = strip_code_fences(content or "")
    if not cleaned:
        raise ParseError(
            "Model response content is empty or whitespace-only",
            raw_content=content or "",
            provider=provider,
            parse_error="Empty content",
        )

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Failed to parse JSON response: {content}",
            raw_content=content,
            provider=provider,
            parse_error=f"{e.msg} at line {e.lineno} col {e.colno}",
        ) from e

    logger.debug("Parsed JSON response", top_level_type=type(parsed).__name__)
    return parsed


def validate_json_payload(
    payload: Any,
    response_model: Type[M],
    raw_content: str,
    provider: Optional[str] = None,
) -> M:
    """
    Validate a parsed payload against a pydantic model.

    Raises:
        ParseError: If the payload does not match the model
    """
    try:
        return response_model.model_validate(payload)
    except ValidationError as e:
        raise ParseError(
            f"JSON response does not match {response_model.__name__}: {e.error_count()} error(s)",
            raw_content=raw_content,
            provider=provider,
            parse_error=str(e),
        ) from e
