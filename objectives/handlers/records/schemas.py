"""
schemas.py — Record Upsert Handler response contract.

The request side is a free-form JSON object (sessionId plus any fields), read
as a plain dict in routes.py and filtered by fields.format_fields().
"""
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UpsertResponse(BaseModel):
    """Which write happened and the id of the row it touched."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    record_id: str = Field(alias="recordId")
    operation: Literal["created", "updated"]


__all__ = ["UpsertResponse"]
