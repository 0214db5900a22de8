"""HTTP middleware: request IDs, request logging and error-to-status mapping."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import (
    ConfigurationError, LLMCapabilityError, NoTestsDefinedError, ToolRegistryError,
    WorkflowEngineError, create_error_response
)
from .logging import get_logger, logging_context

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def status_code_for_error(error: WorkflowEngineError) -> int:
    """Map a workflow engine error to an HTTP status code.

    Bad gang definitions and harness misuse are client errors, a failing
    LLM backend is a bad gateway, anything else raised mid-run is a 500.
    """
    if isinstance(error, (ConfigurationError, ToolRegistryError, NoTestsDefinedError)):
        return 400
    if isinstance(error, LLMCapabilityError):
        return 502
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID, logs it, and turns escaped errors into JSON bodies."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        with logging_context(request_id=request_id):
            try:
                response = await call_next(request)
            except WorkflowEngineError as e:
                logger.warning(f"{route} failed with {e.error_code}: {e.message}")
                response = JSONResponse(status_code=status_code_for_error(e), content=create_error_response(e))
            except Exception as e:
                logger.error(f"{route} raised {type(e).__name__}", exc_info=True)
                response = JSONResponse(
                    status_code=500,
                    content={
                        "error": "InternalServerError",
                        "message": "An unexpected error occurred",
                        "details": {"error_type": type(e).__name__},
                        "request_id": request_id,
                    },
                )

            elapsed = time.perf_counter() - started
            logger.info(f"{route} -> {response.status_code} in {elapsed:.3f}s")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
