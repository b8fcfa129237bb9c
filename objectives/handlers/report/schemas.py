"""
schemas.py — Report Mailer Pydantic v2 data contracts.

Every field is Optional at the schema level: a missing email is answered with
the handler's own 400, and missing report sections render as placeholders.
Ratings arrive as numbers from the flow controller but may be strings from
other clients, so both are accepted and rendered verbatim.
"""
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Rating = Union[int, float, str]


class ReportRequest(BaseModel):
    """Collected session data to render into the emailed report."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    initial_response: Optional[str] = Field(default=None, alias="initialResponse")
    refined_response: Optional[str] = Field(default=None, alias="refinedResponse")
    selected_profile: Optional[str] = Field(default=None, alias="selectedProfile")
    experience_rating: Optional[Rating] = Field(default=None, alias="experienceRating")
    recommend_rating: Optional[Rating] = Field(default=None, alias="recommendRating")


class ReportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message_id: str = Field(alias="messageId")


__all__ = ["Rating", "ReportRequest", "ReportResponse"]
