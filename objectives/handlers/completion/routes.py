"""
routes.py — Completion Handler HTTP endpoint.

POST /api/completion — prompt → Mistral chat completion → {response, model, sessionId}

app.state.completion_service is built in main.create_app().
ConfigurationError / UpstreamError propagate to the global handlers in main.py,
which turn them into 500 / upstream-status responses.
"""
import logging

from fastapi import APIRouter, HTTPException, Request

from objectives.handlers.completion.llm_service import CompletionService
from objectives.handlers.completion.schemas import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Completion"])


@router.post("/completion", response_model=CompletionResponse)
async def completion_endpoint(body: CompletionRequest, request: Request) -> CompletionResponse:
    """
    Forward a prompt to the completion provider with the fixed coach system
    instruction and return the first generated text segment.

    Returns:
      200: {response, model, sessionId}
      400: prompt missing or empty (no outbound call)
      500: MISTRAL_API_KEY not configured
      4xx/5xx: provider error, passed through with its status and payload
    """
    logger.info("Completion requested session_id=%s", body.session_id)
    if not body.prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")

    if body.context:
        logger.debug(
            "Completion context keys session_id=%s keys=%s",
            body.session_id, sorted(body.context),
        )

    service: CompletionService = request.app.state.completion_service
    result = await service.complete(body.prompt)

    logger.info(
        "Completion returned session_id=%s model=%s answer_len=%d",
        body.session_id, result["model"], len(result["text"]),
    )
    return CompletionResponse(
        response=result["text"],
        model=result["model"],
        session_id=body.session_id,
    )
