"""
Rendering of pipeline results as HTTP responses.

Suppressed requests and (under the default "silent" policy) failures produce the
untouched default response: status 200, no content type, empty body.
"""

import logging
from typing import Optional

from fastapi.responses import RedirectResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..models import (
    ContinuityRedirect,
    ErrorRedirect,
    Failure,
    FailureKind,
    ProxyConfig,
    ProxyResult,
    Relayed,
    Suppressed,
)

logger = logging.getLogger(__name__)

FAILURE_STATUS = {
    FailureKind.INVALID_TARGET: 500,
    FailureKind.TRANSPORT: 502,
    FailureKind.TIMEOUT: 504,
    FailureKind.REMOTE_NON_OK: 502,
}


def untouched_response() -> Response:
    return Response()


def failure_status(failure: Failure) -> int:
    if failure.kind == FailureKind.REMOTE_NON_OK and failure.status_code:
        return failure.status_code
    return FAILURE_STATUS[failure.kind]


def relay(result: ProxyResult, config: Optional[ProxyConfig]) -> Response:
    """
    Turn a pipeline result into the response sent to the caller.

    Args:
        result: Terminal outcome of the pipeline
        config: Proxy configuration (None when the pipeline is disabled)

    Returns:
        Starlette response
    """
    if isinstance(result, Relayed):
        background = BackgroundTask(result.release) if result.release else None
        return StreamingResponse(
            result.body,
            status_code=result.status_code,
            headers=result.headers,
            background=background,
        )

    if isinstance(result, ContinuityRedirect):
        response = RedirectResponse(url=result.location, status_code=302)
        response.set_cookie(
            key=result.cookie_name,
            value=result.session_id,
            max_age=result.max_age,
            path=result.path,
        )
        logger.info(
            "Continuity redirect issued",
            extra={"location": result.location, "cookie_path": result.path},
        )
        return response

    if isinstance(result, ErrorRedirect):
        return RedirectResponse(url=result.location, status_code=302)

    if isinstance(result, Failure):
        if config is not None and config.surfaces_failures:
            return Response(status_code=failure_status(result))
        return untouched_response()

    if isinstance(result, Suppressed):
        return untouched_response()

    raise TypeError(f"Unknown proxy result: {result!r}")
