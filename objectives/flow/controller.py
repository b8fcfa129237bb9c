"""
controller.py — Drives one user journey against the objectives API.

ObjectivesFlow issues the same calls, in the same order, as the browser view:

  generate()     POST /api/completion (initial)   → POST /api/record {initialResponse}
  refine(id)     POST /api/completion (refine)    → POST /api/record {selectedProfile, refinedResponse}
  rate(a, b)                                        POST /api/record {experienceRating, recommendRating}
  send_report(e) POST /api/report                 → POST /api/record {email}

Every call is awaited before the next one, so the record store only ever sees
sequential writes for a session.

Record logging is best-effort: failures are logged and the journey continues.
Completion and report failures raise FlowStepError and leave the stage
unchanged so the same step can be retried.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from objectives.flow.state import (
    INITIAL_PROMPT,
    PROFILES,
    FlowState,
    Stage,
    build_refine_prompt,
    new_session_id,
)

logger = logging.getLogger(__name__)

COMPLETION_PATH = "/api/completion"
RECORD_PATH = "/api/record"
REPORT_PATH = "/api/report"


class FlowStateError(ValueError):
    """Step called out of order, or with input the step cannot accept."""


class FlowStepError(RuntimeError):
    """A completion or report call failed; the step can be retried."""


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


def _body_field(response: httpx.Response, key: str, prefix: str) -> Any:
    """Read `key` from a success body; a malformed body fails the step like an error status."""
    try:
        body = response.json()
    except ValueError as exc:
        raise FlowStepError(f"{prefix}: response is not JSON") from exc
    if not isinstance(body, dict) or body.get(key) is None:
        raise FlowStepError(f"{prefix}: response has no {key}")
    return body[key]


class ObjectivesFlow:
    """
    client must point at the objectives API (base_url set, or an ASGI transport).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        state: Optional[FlowState] = None,
        rating_min: int = 1,
        rating_max: int = 10,
    ):
        self._client = client
        self.state = state or FlowState(session_id=new_session_id())
        self.rating_min = rating_min
        self.rating_max = rating_max
        logger.info("Session initialized session_id=%s", self.state.session_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def generate(self) -> str:
        self._expect(Stage.GENERATE)
        text = await self._complete(INITIAL_PROMPT)
        self.state.initial_response = text
        await self._log_record(initialResponse=text)
        self.state.stage = Stage.REFINE
        return text

    async def refine(self, profile_id: str) -> str:
        self._expect(Stage.REFINE)
        if profile_id not in PROFILES:
            raise FlowStateError(f"Unknown profile: {profile_id!r}")

        prompt = build_refine_prompt(PROFILES[profile_id], self.state.initial_response)
        text = await self._complete(
            prompt,
            context={
                "initialResponse": self.state.initial_response,
                "selectedProfile": profile_id,
            },
        )
        self.state.selected_profile = profile_id
        self.state.refined_response = text
        await self._log_record(selectedProfile=profile_id, refinedResponse=text)
        self.state.stage = Stage.RATE
        return text

    async def rate(self, experience: int, recommend: int) -> None:
        self._expect(Stage.RATE)
        for name, value in (("experience", experience), ("recommend", recommend)):
            if isinstance(value, bool) or not isinstance(value, int) \
                    or not self.rating_min <= value <= self.rating_max:
                raise FlowStateError(
                    f"{name} rating must be an integer from {self.rating_min} to {self.rating_max}"
                )

        self.state.experience_rating = experience
        self.state.recommend_rating = recommend
        await self._log_record(experienceRating=experience, recommendRating=recommend)
        self.state.stage = Stage.REPORT

    async def send_report(self, email: str) -> str:
        self._expect(Stage.REPORT)
        email = (email or "").strip()
        if not email:
            raise FlowStateError("Email address is required")

        self.state.email = email
        state = self.state
        try:
            response = await self._client.post(REPORT_PATH, json={
                "email": email,
                "sessionId": state.session_id,
                "initialResponse": state.initial_response,
                "refinedResponse": state.refined_response,
                "selectedProfile": state.profile_name,
                "experienceRating": state.experience_rating,
                "recommendRating": state.recommend_rating,
            })
        except httpx.HTTPError as exc:
            raise FlowStepError(f"Failed to send email: {exc}") from exc
        if response.is_error:
            raise FlowStepError(f"Failed to send email: {_error_message(response)}")

        state.message_id = _body_field(response, "messageId", "Failed to send email")
        await self._log_record(email=email)
        state.stage = Stage.DONE
        logger.info("Report sent session_id=%s message_id=%s", state.session_id, state.message_id)
        return state.message_id

    def restart(self) -> None:
        """Back to the first step, keeping only the session id and email."""
        self.state = self.state.restarted()
        logger.info("Flow restarted session_id=%s", self.state.session_id)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _expect(self, stage: Stage) -> None:
        if self.state.stage is not stage:
            raise FlowStateError(
                f"Cannot run the {stage.value} step while at the {self.state.stage.value} step"
            )

    async def _complete(self, prompt: str, context: Optional[dict[str, Any]] = None) -> str:
        payload: dict[str, Any] = {"prompt": prompt, "sessionId": self.state.session_id}
        if context is not None:
            payload["context"] = context
        try:
            response = await self._client.post(COMPLETION_PATH, json=payload)
        except httpx.HTTPError as exc:
            raise FlowStepError(f"Error fetching objectives: {exc}") from exc
        if response.is_error:
            raise FlowStepError(f"Error fetching objectives: {_error_message(response)}")
        return _body_field(response, "response", "Error fetching objectives")

    async def _log_record(self, **fields: Any) -> Optional[dict[str, Any]]:
        """Upsert the session row. Never raises; returns None on failure."""
        payload = {"sessionId": self.state.session_id, **fields}
        try:
            response = await self._client.post(RECORD_PATH, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Record logging failed session_id=%s: %s", self.state.session_id, exc)
            return None
        if response.is_error:
            logger.warning(
                "Record logging failed session_id=%s status=%d: %s",
                self.state.session_id, response.status_code, _error_message(response),
            )
            return None
        try:
            result = response.json()
        except ValueError:
            logger.warning("Record logging returned a non-JSON body session_id=%s", self.state.session_id)
            return None
        if not isinstance(result, dict):
            result = {}
        logger.info(
            "Record logged session_id=%s operation=%s record_id=%s",
            self.state.session_id, result.get("operation"), result.get("recordId"),
        )
        return result
