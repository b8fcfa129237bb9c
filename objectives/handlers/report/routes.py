"""
routes.py — Report Mailer HTTP endpoint.

POST /api/report — collected session data → rendered markdown/HTML email → {success, messageId}

Relay failures are caught and answered with a 500 carrying the underlying
error message; nothing is queued or retried.
"""
import logging

from fastapi import APIRouter, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from objectives.errors import ConfigurationError, make_error_response
from objectives.handlers.report.mailer import ReportMailer, smtp_summary
from objectives.handlers.report.schemas import ReportRequest, ReportResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Report"])


@router.post("/report", response_model=ReportResponse)
async def report_endpoint(body: ReportRequest, request: Request):
    """
    Email the session report to the given address.

    Returns:
      200: {success: true, messageId}
      400: email missing (no outbound call)
      500: SMTP settings missing, or the relay rejected / could not be reached
    """
    logger.info("Report email requested session_id=%s", body.session_id)
    if not body.email:
        raise HTTPException(status_code=400, detail="Email is required")

    mailer: ReportMailer = request.app.state.report_mailer
    try:
        message_id = await run_in_threadpool(mailer.send, body)
    except ConfigurationError:
        raise
    except Exception as exc:
        logger.error("Error sending report session_id=%s: %s", body.session_id, exc, exc_info=True)
        return make_error_response(
            "Failed to send email",
            status_code=500,
            details=str(exc),
            smtp=smtp_summary(request.app.state.settings),
        )

    return ReportResponse(message_id=message_id)
