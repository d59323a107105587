"""
Memory summarization using an injected completion capability.

Converts a batch of conversation messages into a summary plus topic tags.
Model output is treated as untrusted text: a strict JSON parse is tried
first, and a deterministic heuristic takes over when it fails.
"""

import json
import logging
import re
from typing import Any, List, Mapping, Optional, Sequence

from persona_memory.generation.completion import CompletionFn
from .errors import SummarizationFailed
from .schemas import LLMMessage, SummarizationResult


logger = logging.getLogger(__name__)

SUMMARIZATION_SYSTEM_PROMPT = """You are a conversation memory assistant. Your task is to create a concise summary of the following conversation segment that preserves:

1. Key decisions made
2. Important facts mentioned
3. User preferences expressed
4. Action items or commitments
5. Emotional context and tone

Respond with ONLY a valid JSON object (no markdown, no explanation):
{
  "summary": "A 2-4 sentence summary of the key points",
  "topics": ["topic1", "topic2", "topic3"]
}

The topics array should contain 3-5 key topic tags that could be used to find this memory later."""

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 500
FALLBACK_SUMMARY_CHARS = 500
MAX_TOPICS = 5


def _role_and_content(message: Any) -> tuple:
    if isinstance(message, Mapping):
        return message.get("role", "user"), message.get("content", "")
    return getattr(message, "role", "user"), getattr(message, "content", "")


def format_messages_for_summary(messages: Sequence[Any]) -> str:
    """Render messages as ``ROLE: content`` blocks separated by blank lines."""
    lines = []
    for message in messages:
        role, content = _role_and_content(message)
        lines.append(f"{str(role).upper()}: {content}")
    return "\n\n".join(lines)


def build_summary_request(messages: Sequence[Any], persona_context: Optional[str] = None) -> str:
    """Build the single user message sent alongside the system prompt."""
    prompt = f"Please summarize this conversation segment:\n\n{format_messages_for_summary(messages)}"
    if persona_context:
        prompt += f"\n\nThis conversation was with a persona described as: {persona_context}"
    return prompt


def extract_topics_from_text(text: str) -> List[str]:
    """
    Heuristic topic extraction used when the model did not return JSON.

    Keeps words longer than 4 characters that are capitalized (likely names
    or subjects) or longer than 6 characters, lowercased and deduplicated.
    """
    topics: List[str] = []
    for word in text.split():
        cleaned = re.sub(r"[^\w]", "", word)
        if len(cleaned) > 4 and (cleaned[0].isupper() or len(cleaned) > 6):
            topic = cleaned.lower()
            if topic not in topics:
                topics.append(topic)
        if len(topics) >= MAX_TOPICS:
            break
    return topics


def _strip_code_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    return text


def _clean_topics(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    topics = []
    for item in value:
        if isinstance(item, str) and item.strip():
            topics.append(item.strip())
    return topics[:MAX_TOPICS]


def parse_summarization_response(raw: str, fallback_text: Optional[str] = None) -> SummarizationResult:
    """
    Parse a model response into a SummarizationResult. Never raises.

    Args:
        raw: Raw completion text
        fallback_text: Used for the summary when the response itself is blank

    Returns:
        Parsed result, or a truncated-text fallback with heuristic topics
    """
    try:
        parsed = json.loads(_strip_code_fences(raw))
        summary = parsed.get("summary") if isinstance(parsed, dict) else None
        if isinstance(summary, str) and summary.strip():
            return SummarizationResult(
                summary=summary.strip(),
                topics=_clean_topics(parsed.get("topics")),
            )
    except (json.JSONDecodeError, TypeError, ValueError):
        pass

    logger.warning("Failed to parse summarization response as JSON, using fallback")
    text = raw.strip() or (fallback_text or "").strip()
    return SummarizationResult(
        summary=text[:FALLBACK_SUMMARY_CHARS] or "Conversation segment.",
        topics=extract_topics_from_text(text),
    )


class MemorySummarizer:
    """
    Summarizes message batches into memory summaries.

    The completion capability is injected at construction so tests can
    pass a fake.
    """

    def __init__(
        self,
        complete: CompletionFn,
        temperature: float = SUMMARY_TEMPERATURE,
        max_tokens: int = SUMMARY_MAX_TOKENS,
    ):
        """
        Initialize summarizer.

        Args:
            complete: Async completion capability
            temperature: Sampling temperature for summary calls
            max_tokens: Output token budget for summary calls
        """
        self.complete = complete
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def summarize_messages(
        self,
        messages: Sequence[Any],
        provider: str,
        model: str,
        persona_context: Optional[str] = None,
    ) -> SummarizationResult:
        """
        Summarize a message batch with a single completion call.

        Args:
            messages: Batch selected by the trigger engine
            provider: Provider selector, forwarded unchanged
            model: Model selector, forwarded unchanged
            persona_context: Optional persona description

        Returns:
            SummarizationResult with a non-empty summary

        Raises:
            ValueError: If the batch is empty
            SummarizationFailed: If the completion call errors
        """
        if not messages:
            raise ValueError("No messages to summarize")

        request = build_summary_request(messages, persona_context)

        try:
            raw = await self.complete(
                [LLMMessage(role="user", content=request)],
                SUMMARIZATION_SYSTEM_PROMPT,
                provider,
                model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.error("Summarization call failed (%s/%s): %s", provider, model, e)
            raise SummarizationFailed(
                f"Summarization failed: {e}", provider=provider, model=model
            ) from e

        return parse_summarization_response(raw or "", fallback_text=format_messages_for_summary(messages))


async def summarize_messages(
    complete: CompletionFn,
    messages: Sequence[Any],
    provider: str,
    model: str,
    persona_context: Optional[str] = None,
) -> SummarizationResult:
    """Standalone function for one-off summarization."""
    summarizer = MemorySummarizer(complete)
    return await summarizer.summarize_messages(messages, provider, model, persona_context)
