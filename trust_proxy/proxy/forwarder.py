"""
Backend dispatch.

One ``httpx.AsyncClient`` is shared by every request (created in the application
lifespan); the forwarder only builds and sends requests on it. Calls are made at
most once: nothing is retried, whatever the failure.
"""

import logging
from typing import AsyncIterator, Dict, Union

import httpx

from ..models import (
    Failure,
    FailureKind,
    IncomingRequest,
    OutgoingRequest,
    Relayed,
)

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST")

# Response headers copied back to the caller
RELAYED_HEADERS = ("content-type", "content-length", "content-encoding")

# httpx would otherwise advertise gzip/deflate on the caller's behalf
OUTBOUND_HEADERS = {"Accept-Encoding": "identity"}


def build_outgoing_request(incoming: IncomingRequest, target: httpx.URL) -> OutgoingRequest:
    """
    Build the backend request for an inbound GET or POST.

    POST bodies are always labelled application/json, whatever the caller sent.
    The backend is asked for an unencoded body since no caller header is forwarded.
    """
    method = incoming.method.upper()
    if method not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported proxy method: {incoming.method}")

    if method == "POST":
        return OutgoingRequest(
            method=method,
            url=str(target),
            body=incoming.body,
            headers={**OUTBOUND_HEADERS, "Content-Type": "application/json"},
        )
    return OutgoingRequest(method=method, url=str(target), headers=dict(OUTBOUND_HEADERS))


def relay_headers(response: httpx.Response) -> Dict[str, str]:
    return {
        name: response.headers[name]
        for name in RELAYED_HEADERS
        if name in response.headers
    }


async def raw_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield the raw body. Responses buffered by an in-process transport are yielded as loaded."""
    if response.is_stream_consumed:
        yield response.content
        return
    async for chunk in response.aiter_raw():
        yield chunk


class HttpForwarder:
    """
    Executes outbound calls on the shared backend client.

    Attributes:
        client: Process-wide httpx.AsyncClient (connection pool, timeouts)
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def execute(self, outgoing: OutgoingRequest) -> Union[Relayed, Failure]:
        """
        Send the request and classify the outcome.

        On success the response body is left unread: the returned Relayed
        streams it and closes the upstream response through ``release``.

        Returns:
            Relayed for 2xx responses, Failure(REMOTE_NON_OK) for any other
            status, Failure(TIMEOUT) or Failure(TRANSPORT) when the backend
            could not be reached
        """
        request = self.client.build_request(
            outgoing.method,
            outgoing.url,
            content=outgoing.body,
            headers=outgoing.headers,
        )

        try:
            response = await self.client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error(
                f"Proxy transport timeout: {e}",
                extra={"method": outgoing.method, "target_host": request.url.host},
            )
            return Failure(kind=FailureKind.TIMEOUT, detail=str(e), target=request.url.host)
        except httpx.HTTPError as e:
            logger.error(
                f"Proxy transport failure: {e}",
                extra={"method": outgoing.method, "target_host": request.url.host},
                exc_info=True,
            )
            return Failure(kind=FailureKind.TRANSPORT, detail=str(e), target=request.url.host)

        if not response.is_success:
            await response.aclose()
            logger.error(
                f"Remote HTTP call failed: {response.status_code} {response.reason_phrase}",
                extra={
                    "method": outgoing.method,
                    "target_host": request.url.host,
                    "status_code": response.status_code,
                },
            )
            return Failure(
                kind=FailureKind.REMOTE_NON_OK,
                detail=response.reason_phrase,
                status_code=response.status_code,
                target=request.url.host,
            )

        return Relayed(
            status_code=response.status_code,
            headers=relay_headers(response),
            body=raw_body(response),
            release=response.aclose,
        )
