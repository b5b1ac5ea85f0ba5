"""
Text-correction providers backed by LLM APIs.

This module provides the ``TextCorrector`` interface consumed by the AI
content corrector, plus Anthropic (Claude) and OpenAI implementations. Each
provider sends one targeted correction request and returns a new Document
built from the JSON reply.
"""

import json
import logging
import os
from typing import Any, Optional, Protocol, runtime_checkable

import anthropic
import httpx
import openai

from .errors import CorrectionServiceError
from .models import Document

logger = logging.getLogger(__name__)


CORRECTION_SYSTEM_PROMPT = """You are an expert SEO content editor. You make ONE specific, targeted correction to a document per request.

CRITICAL RULES - MUST FOLLOW:
1. Make ONLY the correction described in the request
2. Preserve all other content exactly as is
3. Keep the same HTML structure: do not add, remove or reorder headings, paragraphs, lists or images unless the correction explicitly asks for it
4. Use keywords as COMPLETE PHRASES - never split or reorder their words
5. Do not invent facts or claims that are not supported by the original content

OUTPUT FORMAT:
- Return ONLY valid JSON with the fields: title, meta_description, content
- "content" is the full HTML body
- Do NOT include any explanation or commentary"""


@runtime_checkable
class TextCorrector(Protocol):
    """A capability that applies one correction instruction to a document."""

    name: str

    def correct(
        self,
        document: Document,
        prompt_text: str,
        context: Optional[dict[str, Any]] = None,
    ) -> Document:
        """Return the corrected document or raise CorrectionServiceError."""
        ...


def build_correction_request(
    document: Document,
    prompt_text: str,
    context: Optional[dict[str, Any]] = None,
) -> str:
    """
    Build the user message for a single correction.

    Args:
        document: Document to correct.
        prompt_text: Targeted instruction from the prompt generator.
        context: Optional extra context (issue type, attempt number...).

    Returns:
        The request text.
    """
    parts = [
        "CORRECTION REQUIRED:",
        prompt_text,
        "",
        "CURRENT CONTENT:",
        f"Title: {document.title}",
        f"Meta Description: {document.meta_description}",
        "Content:",
        document.body,
        "",
    ]
    if document.focus_keyword:
        parts.append(f"Focus Keyword: {document.focus_keyword}")
    if document.secondary_keywords:
        parts.append(f"Secondary Keywords: {', '.join(document.secondary_keywords)}")
    if context and context.get("issue_type"):
        parts.append(f"Issue Type: {context['issue_type']}")
    parts.extend([
        "",
        "Return ONLY valid JSON with fields: title, meta_description, content.",
    ])
    return "\n".join(parts)


def parse_correction_response(response_text: str, original: Document) -> Document:
    """
    Parse a provider reply into a Document.

    Strips code fences, extracts the outermost JSON object and merges the
    returned fields over the original document. Missing fields keep their
    original values.

    Raises:
        CorrectionServiceError: If no JSON object can be parsed.
    """
    text = (response_text or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise CorrectionServiceError("Provider response contained no JSON object")

    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise CorrectionServiceError(f"Invalid JSON in provider response: {e}") from e
    if not isinstance(data, dict):
        raise CorrectionServiceError("Provider response JSON is not an object")

    changes = {}
    if isinstance(data.get("title"), str):
        changes["title"] = data["title"].strip()
    if isinstance(data.get("meta_description"), str):
        changes["meta_description"] = data["meta_description"].strip()
    if isinstance(data.get("content"), str):
        changes["body"] = data["content"]
    return original.with_changes(**changes)


def _http_client() -> httpx.Client:
    return httpx.Client(
        timeout=httpx.Timeout(60.0, connect=30.0),
        follow_redirects=True,
    )


class AnthropicCorrector:
    """Correction provider using the Anthropic Claude API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        client: Optional[Any] = None,
    ):
        """
        Initialize the Anthropic provider.

        Args:
            api_key: API key. If None, reads from ANTHROPIC_API_KEY env var.
            model: Model identifier to use.
            max_tokens: Maximum tokens in a response.
            client: Pre-built ``anthropic.Anthropic`` client (tests, pooling).
        """
        self.model = model
        self.max_tokens = max_tokens

        if client is not None:
            self.client = client
            return

        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise CorrectionServiceError(
                "No API key provided. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.client = anthropic.Anthropic(api_key=api_key, http_client=_http_client())

    def correct(
        self,
        document: Document,
        prompt_text: str,
        context: Optional[dict[str, Any]] = None,
    ) -> Document:
        user_prompt = build_correction_request(document, prompt_text, context)
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=CORRECTION_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise CorrectionServiceError(f"Anthropic request timeout: {e}", "network_error") from e
        except anthropic.RateLimitError as e:
            raise CorrectionServiceError(f"Anthropic rate limit exceeded: {e}", "rate_limit_exceeded") from e
        except anthropic.APIConnectionError as e:
            raise CorrectionServiceError(f"Anthropic network error: {e}", "network_error") from e
        except anthropic.APIError as e:
            raise CorrectionServiceError(f"Anthropic API error: {e}") from e

        if not response.content:
            raise CorrectionServiceError("Anthropic returned an empty response")
        return parse_correction_response(response.content[0].text, document)


class OpenAICorrector:
    """Correction provider using the OpenAI chat completions API."""

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 4096,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens

        if client is not None:
            self.client = client
            return

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise CorrectionServiceError(
                "No API key provided. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.client = openai.OpenAI(api_key=api_key, http_client=_http_client())

    def correct(
        self,
        document: Document,
        prompt_text: str,
        context: Optional[dict[str, Any]] = None,
    ) -> Document:
        user_prompt = build_correction_request(document, prompt_text, context)
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": CORRECTION_SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.APITimeoutError as e:
            raise CorrectionServiceError(f"OpenAI request timeout: {e}", "network_error") from e
        except openai.RateLimitError as e:
            raise CorrectionServiceError(f"OpenAI rate limit exceeded: {e}", "rate_limit_exceeded") from e
        except openai.APIConnectionError as e:
            raise CorrectionServiceError(f"OpenAI network error: {e}", "network_error") from e
        except openai.APIError as e:
            raise CorrectionServiceError(f"OpenAI API error: {e}") from e

        if not response.choices:
            raise CorrectionServiceError("OpenAI returned an empty response")
        return parse_correction_response(response.choices[0].message.content or "", document)


PROVIDERS = {
    "anthropic": AnthropicCorrector,
    "openai": OpenAICorrector,
}


def create_corrector(
    provider: str = "anthropic",
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> TextCorrector:
    """
    Factory function to create a correction provider.

    Args:
        provider: ``"anthropic"`` or ``"openai"``.
        api_key: Optional API key. If None, uses the provider's env var.
        model: Optional model override.

    Returns:
        Configured provider instance.
    """
    try:
        provider_cls = PROVIDERS[provider]
    except KeyError:
        raise CorrectionServiceError(
            f"Unknown provider '{provider}'. Choose from: {', '.join(sorted(PROVIDERS))}"
        ) from None
    kwargs: dict[str, Any] = {"api_key": api_key}
    if model:
        kwargs["model"] = model
    return provider_cls(**kwargs)
