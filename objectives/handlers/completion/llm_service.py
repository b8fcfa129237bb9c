"""
llm_service.py — Mistral async completion layer.

Components:
  SYSTEM_PROMPT        — fixed coach persona + markdown output expectations
  build_messages()     — system turn + user turn, in that order
  first_text_segment() — first text piece of a Mistral message content
  CompletionService    — one chat.complete_async call per request, no retry

No HTTPException here; the HTTP layer is routes.py.
Provider errors are re-raised as UpstreamError carrying the provider's status
code and payload so routes can pass them through unchanged.
"""
import json
import logging
from typing import Any, Optional

from mistralai import Mistral
from mistralai.models import HTTPValidationError, SDKError

from objectives.config import Settings
from objectives.errors import UpstreamError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Mistral API constants
# ---------------------------------------------------------------------------

MISTRAL_MODEL = "mistral-large-latest"
MISTRAL_TEMPERATURE = 0.7
MISTRAL_MAX_TOKENS = 1000

SYSTEM_PROMPT = (
    "You are an experienced tech manager coach. Your goal is to provide practical, "
    "actionable objectives that can be accomplished within a 90-day timeframe. "
    "Make your advice specific, measurable, and tailored to the user's context. "
    "Format your response in markdown with clear headings and bullet points."
)


# ---------------------------------------------------------------------------
# Request / response helpers
# ---------------------------------------------------------------------------

def build_messages(prompt: str) -> list[dict[str, str]]:
    """System instruction first, then the caller's prompt as the user turn."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def first_text_segment(content: Any) -> str:
    """
    Mistral returns message.content either as a plain string or as a list of
    content chunks (text, image_url, ...). Return the first text piece.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    for chunk in content:
        text = getattr(chunk, "text", None)
        if text is None and isinstance(chunk, dict):
            text = chunk.get("text")
        if text:
            return text
    return ""


def _parse_error_body(body: Optional[str]) -> Any:
    """Provider error payloads are JSON most of the time; fall back to raw text."""
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return body


def _upstream_error(exc: Exception) -> UpstreamError:
    """
    SDKError covers every non-2xx status; HTTPValidationError is raised
    separately for 422. Older SDK releases give HTTPValidationError only a
    `data` model, with no status_code or body.
    """
    status_code = getattr(exc, "status_code", None) or 422
    body = getattr(exc, "body", None)
    if body:
        details = _parse_error_body(body)
    else:
        data = getattr(exc, "data", None)
        details = data.model_dump(mode="json") if data is not None else str(exc)
    return UpstreamError(status_code, details, "Error calling completion provider")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class CompletionService:
    """
    Pass-through translator from the client's {prompt} shape to a Mistral chat
    completion. Built once in create_app(); the SDK client is created lazily on
    first use so a missing API key only fails the requests that need it.
    """

    def __init__(self, settings: Settings, client: Optional[Mistral] = None):
        self._settings = settings
        self._client = client

    def _get_client(self) -> Mistral:
        self._settings.require("mistral_api_key")
        if self._client is None:
            self._client = Mistral(api_key=self._settings.mistral_api_key)
        return self._client

    async def complete(self, prompt: str) -> dict[str, str]:
        """
        Returns dict with keys: text, model.

        Raises:
            ConfigurationError: MISTRAL_API_KEY is empty.
            UpstreamError: provider answered with a non-success status.
        """
        client = self._get_client()
        logger.info(
            "Calling Mistral API model=%s prompt_len=%d", MISTRAL_MODEL, len(prompt)
        )

        try:
            response = await client.chat.complete_async(
                model=MISTRAL_MODEL,
                messages=build_messages(prompt),
                temperature=MISTRAL_TEMPERATURE,
                max_tokens=MISTRAL_MAX_TOKENS,
            )
        except (SDKError, HTTPValidationError) as exc:
            error = _upstream_error(exc)
            logger.error(
                "Mistral API error status=%s type=%s", error.status_code, type(exc).__name__
            )
            raise error from exc

        text = first_text_segment(response.choices[0].message.content)
        model = response.model or MISTRAL_MODEL
        logger.info("Mistral response received model=%s answer_len=%d", model, len(text))
        return {"text": text, "model": model}
