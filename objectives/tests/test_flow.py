"""
test_flow.py — ObjectivesFlow driven end-to-end through the real app.

The httpx client talks to the FastAPI app over ASGITransport; the app talks
to FakeTable / SMTPRecorder / a mocked Mistral client.
"""
from __future__ import annotations

import re

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from objectives.flow.controller import FlowStateError, FlowStepError, ObjectivesFlow
from objectives.flow.state import (
    INITIAL_PROMPT,
    PROFILES,
    FlowState,
    Stage,
    build_refine_prompt,
    new_session_id,
)
from objectives.tests.fakes import (
    FakeTable,
    SMTPRecorder,
    auth_error,
    build_app,
    make_completion,
    make_mistral,
    make_sdk_error,
    make_settings,
)

T1 = "## Objectives\n1. Build team rituals"
T2 = "## Refined objectives\n1. Ship weekly"


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


# ---------------------------------------------------------------------------
# State helpers
# ---------------------------------------------------------------------------

def test_new_session_id_format() -> None:
    session_id = new_session_id(now_ms=1700000000000)
    assert re.fullmatch(r"session_1700000000000_[0-9a-z]{7}", session_id)


def test_refine_prompt_embeds_role_and_initial_text() -> None:
    prompt = build_refine_prompt("Product Manager", T1)
    assert prompt.startswith("I've selected the role of Product Manager.")
    assert prompt.endswith("\n\n" + T1)


def test_restarted_state_keeps_only_session_and_email() -> None:
    state = FlowState(
        session_id="S1", stage=Stage.DONE, initial_response=T1, refined_response=T2,
        selected_profile="startup", experience_rating=8, recommend_rating=9,
        email="u@x.com", message_id="<m@x>",
    )
    assert state.restarted() == FlowState(session_id="S1", email="u@x.com")


# ---------------------------------------------------------------------------
# End-to-end scenario
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_full_journey_leaves_exactly_one_row_with_all_fields() -> None:
    mistral = make_mistral(T1, T2)
    table = FakeTable()
    smtp = SMTPRecorder()
    app = build_app(mistral=mistral, table=table, smtp=smtp)

    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))

        assert await flow.generate() == T1
        assert flow.state.stage is Stage.REFINE
        assert [c[0] for c in table.calls] == ["first", "create"]

        assert await flow.refine("startup") == T2
        assert flow.state.stage is Stage.RATE

        await flow.rate(8, 9)
        assert flow.state.stage is Stage.REPORT

        message_id = await flow.send_report("u@x.com")
        assert flow.state.stage is Stage.DONE

    # completion prompts
    prompts = [c.kwargs["messages"][1]["content"] for c in mistral.chat.complete_async.call_args_list]
    assert prompts == [INITIAL_PROMPT, build_refine_prompt(PROFILES["startup"], T1)]

    # one row, created once then updated by every later step
    assert [c[0] for c in table.calls].count("create") == 1
    assert [c[0] for c in table.calls].count("update") == 3
    rows = table.rows_for("S1")
    assert len(rows) == 1
    row = rows[0]
    assert row["InitialResponse"] == T1
    assert row["RefinedResponse"] == T2
    assert row["SelectedProfile"] == "startup"
    assert row["ExperienceRating"] == 8
    assert row["RecommendRating"] == 9
    assert row["UserEmail"] == "u@x.com"

    # report carries the profile display name
    assert smtp.sent[0]["Message-ID"] == message_id
    plain = smtp.sent[0].get_body(preferencelist=("plain",)).get_content()
    assert "Startup Tech Lead" in plain
    assert T2 in plain


# ---------------------------------------------------------------------------
# Stage guards and input checks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_steps_cannot_run_out_of_order() -> None:
    app = build_app(mistral=make_mistral(T1), table=FakeTable())
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        with pytest.raises(FlowStateError):
            await flow.refine("startup")
        with pytest.raises(FlowStateError):
            await flow.rate(5, 5)
        with pytest.raises(FlowStateError):
            await flow.send_report("u@x.com")

        await flow.generate()
        with pytest.raises(FlowStateError):
            await flow.generate()


@pytest.mark.asyncio
async def test_unknown_profile_is_rejected_before_any_call() -> None:
    mistral = make_mistral(T1)
    app = build_app(mistral=mistral, table=FakeTable())
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        await flow.generate()
        with pytest.raises(FlowStateError):
            await flow.refine("ceo")
    assert mistral.chat.complete_async.await_count == 1
    assert flow.state.stage is Stage.REFINE


@pytest.mark.asyncio
@pytest.mark.parametrize("ratings", [(0, 5), (5, 11), (True, 5), (5, "9")])
async def test_ratings_must_be_integers_in_range(ratings) -> None:
    app = build_app()
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1", stage=Stage.RATE))
        with pytest.raises(FlowStateError):
            await flow.rate(*ratings)
    assert flow.state.stage is Stage.RATE


@pytest.mark.asyncio
async def test_blank_email_is_rejected() -> None:
    smtp = SMTPRecorder()
    app = build_app(smtp=smtp)
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1", stage=Stage.REPORT))
        with pytest.raises(FlowStateError):
            await flow.send_report("   ")
    assert smtp.connections == []


# ---------------------------------------------------------------------------
# Failure policy
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_record_failures_do_not_stop_the_journey() -> None:
    table = FakeTable(error=RuntimeError("Airtable is down"))
    app = build_app(mistral=make_mistral(T1, T2), table=table, smtp=SMTPRecorder())
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        await flow.generate()
        await flow.refine("enterprise")
        await flow.rate(7, 7)
        await flow.send_report("u@x.com")

    assert flow.state.stage is Stage.DONE
    assert table.rows == {}


@pytest.mark.asyncio
async def test_record_logging_unconfigured_is_also_non_fatal() -> None:
    app = build_app(make_settings(airtable_api_key=""), mistral=make_mistral(T1), table=FakeTable())
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        assert await flow.generate() == T1
    assert flow.state.stage is Stage.REFINE


@pytest.mark.asyncio
async def test_completion_failure_keeps_stage_and_can_be_retried() -> None:
    mistral = make_mistral(T1)
    mistral.chat.complete_async.side_effect = [
        make_sdk_error(500, '{"message": "internal"}'),
        make_completion(T1),
    ]
    table = FakeTable()
    app = build_app(mistral=mistral, table=table)
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        with pytest.raises(FlowStepError):
            await flow.generate()
        assert flow.state.stage is Stage.GENERATE
        assert table.calls == []

        assert await flow.generate() == T1
    assert flow.state.stage is Stage.REFINE


@pytest.mark.asyncio
async def test_report_failure_keeps_stage_and_skips_email_logging() -> None:
    table = FakeTable()
    app = build_app(table=table, smtp=SMTPRecorder(login_error=auth_error()))
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1", stage=Stage.REPORT))
        with pytest.raises(FlowStepError, match="Failed to send email"):
            await flow.send_report("u@x.com")

    assert flow.state.stage is Stage.REPORT
    assert table.calls == []



def _canned(body: bytes, content_type: str = "application/json") -> httpx.AsyncClient:
    """Client whose every request gets a 200 with the given body."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body, headers={"Content-Type": content_type})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"<html>gateway</html>", b"{}", b"[]", b'{"response": null}'])
async def test_malformed_completion_body_is_a_retryable_step_error(body: bytes) -> None:
    async with _canned(body) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        with pytest.raises(FlowStepError, match="Error fetching objectives"):
            await flow.generate()
    assert flow.state.stage is Stage.GENERATE


@pytest.mark.asyncio
async def test_report_body_without_message_id_is_a_step_error() -> None:
    async with _canned(b'{"success": true}') as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1", stage=Stage.REPORT))
        with pytest.raises(FlowStepError, match="messageId"):
            await flow.send_report("u@x.com")
    assert flow.state.stage is Stage.REPORT
    assert flow.state.message_id is None


@pytest.mark.asyncio
async def test_non_json_record_reply_does_not_stop_the_journey() -> None:
    async with _canned(b"ok", content_type="text/plain") as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1", stage=Stage.RATE))
        await flow.rate(7, 8)
    assert flow.state.stage is Stage.REPORT


@pytest.mark.asyncio
async def test_restart_after_done_keeps_session_and_email() -> None:
    app = build_app(mistral=make_mistral(T1, T2), table=FakeTable(), smtp=SMTPRecorder())
    async with _client(app) as http:
        flow = ObjectivesFlow(http, FlowState(session_id="S1"))
        await flow.generate()
        await flow.refine("product")
        await flow.rate(6, 6)
        await flow.send_report("u@x.com")

        flow.restart()

    assert flow.state == FlowState(session_id="S1", email="u@x.com")
