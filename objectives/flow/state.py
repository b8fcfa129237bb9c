"""
state.py — Client-side flow state for the four-step objectives journey.

    generate → refine → rate → report → done

The state only moves forward. restart() is the single way back and keeps
nothing but the session id and the email address.
"""
from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Stage(str, Enum):
    GENERATE = "generate"
    REFINE = "refine"
    RATE = "rate"
    REPORT = "report"
    DONE = "done"


# profile id → display name
PROFILES: dict[str, str] = {
    "startup": "Startup Tech Lead",
    "enterprise": "Enterprise Manager",
    "product": "Product Manager",
}

INITIAL_PROMPT = (
    "Suggest 5 effective 90-day objectives for a manager at a tech company. "
    "Format your response as a markdown list with brief explanations for each objective."
)

_BASE36 = string.digits + string.ascii_lowercase


def build_refine_prompt(profile_name: str, initial_response: str) -> str:
    return (
        f"I've selected the role of {profile_name}. Based on this role, please refine "
        f"the following 90-day objectives to be more specific and relevant:\n\n{initial_response}"
    )


def new_session_id(now_ms: Optional[int] = None) -> str:
    """session_<epoch ms>_<7 random base36 chars>; unique enough, never checked."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=7))
    return f"session_{now_ms}_{suffix}"


@dataclass
class FlowState:
    session_id: str
    stage: Stage = Stage.GENERATE
    initial_response: str = ""
    refined_response: str = ""
    selected_profile: Optional[str] = None  # profile id, see PROFILES
    experience_rating: Optional[int] = None
    recommend_rating: Optional[int] = None
    email: str = ""
    message_id: Optional[str] = None

    @property
    def profile_name(self) -> Optional[str]:
        return PROFILES.get(self.selected_profile) if self.selected_profile else None

    def restarted(self) -> FlowState:
        """Fresh state for the same session, keeping only the email."""
        return FlowState(session_id=self.session_id, email=self.email)
