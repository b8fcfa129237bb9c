"""
schemas.py — Completion Handler Pydantic v2 data contracts.

Wire format is camelCase (sessionId) to match the browser client; Python
attributes are snake_case via aliases.

prompt is Optional at the schema level so that an absent prompt is answered
with the handler's own 400 "Prompt is required" instead of a generic
validation error.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompletionRequest(BaseModel):
    """Prompt from the client plus its session correlation id."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    prompt: Optional[str] = Field(default=None, description="User-turn prompt text")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    context: Optional[dict[str, Any]] = Field(
        default=None,
        description="Client-side context (initial objectives, selected profile). Not forwarded.",
    )


class CompletionResponse(BaseModel):
    """Generated text, the model the provider reports, and the echoed session id."""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    model: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


__all__ = ["CompletionRequest", "CompletionResponse"]
