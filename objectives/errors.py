"""
errors.py — Error taxonomy and the shared error envelope.

  ConfigurationError  — a required environment value is missing (→ 500)
  UpstreamError       — the completion provider answered with a non-success
                        status; carries that status and payload through
  make_error_response — flat {"error": message, ...} JSON body used by every route
"""
from typing import Any, Optional

from fastapi.responses import JSONResponse


class ConfigurationError(RuntimeError):
    """A required setting is empty for the request being served."""

    def __init__(self, env_var: str):
        self.env_var = env_var
        super().__init__(f"Server configuration error: {env_var} not set")


class UpstreamError(RuntimeError):
    """Non-success response from an external provider."""

    def __init__(self, status_code: int, details: Any, message: str = "Upstream error"):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


def make_error_response(
    message: str,
    status_code: int = 500,
    details: Optional[Any] = None,
    **extra: Any,
) -> JSONResponse:
    """Build a standard {error, details?, ...} response."""
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = details
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)
