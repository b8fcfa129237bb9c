"""
routes.py — Record Upsert Handler HTTP endpoint.

POST /api/record — {sessionId, ...fields} → find-or-create the session row → {success, recordId, operation}

Best-effort from the client's perspective: the flow controller logs a failure
here and carries on. Store failures are caught, logged with traceback and
answered with a generic 500; nothing is retried.
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from objectives.errors import ConfigurationError, make_error_response
from objectives.handlers.records.schemas import UpsertResponse
from objectives.handlers.records.store import RecordStore, classify_store_error, config_summary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Records"])


@router.post("/record", response_model=UpsertResponse)
async def record_upsert_endpoint(
    request: Request,
    payload: Optional[dict[str, Any]] = Body(default=None),
):
    """
    Create or update the tracking row for a session.

    Recognised fields: initialResponse, refinedResponse, selectedProfile,
    experienceRating, recommendRating, email. Others are ignored.

    Returns:
      200: {success: true, recordId, operation: created|updated}
      400: sessionId missing (no outbound call)
      500: Airtable settings missing, or the store call failed
    """
    data = dict(payload or {})
    session_id = data.pop("sessionId", None)
    if not isinstance(session_id, str) or not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    logger.info("Record upsert requested session_id=%s keys=%s", session_id, sorted(data))

    store: RecordStore = request.app.state.record_store
    try:
        result = await run_in_threadpool(store.upsert, session_id, data)
    except ConfigurationError:
        raise
    except Exception as exc:
        logger.error("Record store error session_id=%s: %s", session_id, exc, exc_info=True)
        return make_error_response(
            classify_store_error(exc),
            status_code=500,
            details=str(exc),
            config=config_summary(request.app.state.settings),
        )

    return UpsertResponse(record_id=result.record_id, operation=result.operation)
