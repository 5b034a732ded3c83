"""Structured conversation analysis backed by an LLM.

The analyzer turns an ordered transcript into an :class:`AnalysisPayload`.
Anything that is not valid JSON matching the schema raises
:class:`AnalysisError`; nothing is persisted from unparsable output.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Literal, Optional, Protocol, Sequence, Tuple

from openai import OpenAI
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ANALYSIS_MAX_TOKENS = 500
ANALYSIS_TEMPERATURE = 0.1

SYSTEM_PROMPT = """You are a conversation analyst. Analyze the following customer service conversation and return a JSON object with these fields:
- sentiment: "positive", "neutral", "negative", or "mixed"
- sentiment_score: number from -1.0 (very negative) to 1.0 (very positive)
- topics: array of 1-5 topic strings (e.g., "pricing", "appointment booking", "product inquiry")
- summary: 1-2 sentence summary of the conversation
- resolution_status: "resolved" (customer's issue was addressed), "escalated" (transferred to human), "unresolved" (issue not addressed), or "unknown"
- knowledge_gaps: array of questions the AI struggled to answer or said it didn't know (empty array if none)
- key_phrases: array of 1-3 important phrases from the conversation
- customer_intent: brief description of what the customer wanted (null if unclear)
- confidence_avg: estimated average confidence of AI responses (0.0 to 1.0)

Return ONLY valid JSON, no markdown or explanation."""


class AnalysisError(RuntimeError):
    """Raised when the analysis capability fails or returns invalid output."""


class AnalysisPayload(BaseModel):
    sentiment: Literal["positive", "neutral", "negative", "mixed"]
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    topics: List[str] = Field(min_length=1, max_length=5)
    summary: str = Field(min_length=1)
    resolution_status: Literal["resolved", "escalated", "unresolved", "unknown"]
    knowledge_gaps: List[str] = Field(default_factory=list)
    key_phrases: List[str] = Field(default_factory=list)
    customer_intent: Optional[str] = None
    confidence_avg: float = Field(default=0.5, ge=0.0, le=1.0)


class ConversationAnalyzer(Protocol):
    def analyze(self, turns: Sequence[Tuple[str, str]]) -> AnalysisPayload: ...


def format_transcript(turns: Sequence[Tuple[str, str]]) -> str:
    return "\n".join(
        f"{'Customer' if role == 'user' else 'Agent'}: {content}" for role, content in turns
    )


def parse_analysis(content: str | None) -> AnalysisPayload:
    """Validate raw model output against :class:`AnalysisPayload`."""

    if not content:
        raise AnalysisError("Analysis returned no content")
    try:
        data: Any = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AnalysisError(f"Analysis output is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalysisError("Analysis output must be a JSON object")
    try:
        return AnalysisPayload.model_validate(data)
    except ValidationError as exc:
        raise AnalysisError(f"Analysis output failed validation: {exc}") from exc


class OpenAIConversationAnalyzer:
    """Analyze transcripts with an OpenAI chat completion in JSON mode."""

    def __init__(
        self,
        client: Any | None = None,
        *,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
    ) -> None:
        if client is None and api_key:
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model

    def analyze(self, turns: Sequence[Tuple[str, str]]) -> AnalysisPayload:
        if self.client is None:
            raise AnalysisError("OpenAI API key not configured")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": format_transcript(turns)},
                ],
                max_tokens=ANALYSIS_MAX_TOKENS,
                temperature=ANALYSIS_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            raise AnalysisError(f"Analysis request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        payload = parse_analysis(content)
        logger.debug("Analysis complete: sentiment=%s topics=%s", payload.sentiment, payload.topics)
        return payload


__all__ = [
    "AnalysisError",
    "AnalysisPayload",
    "ConversationAnalyzer",
    "OpenAIConversationAnalyzer",
    "format_transcript",
    "parse_analysis",
]
