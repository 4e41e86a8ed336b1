"""HTTP transport streaming stage events from the translation service."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping

import httpx
from pydantic import ValidationError

from tessera_core.ports.transport import (
    StreamTransportProtocol,
    TransportError,
    TransportErrorCode,
    TransportErrorDetails,
    TransportErrorInfo,
)
from tessera_schemas.config import DEFAULT_STAGE_PATHS
from tessera_schemas.primitives import StageName
from tessera_schemas.requests import StageRequest
from tessera_schemas.stream import (
    CompletionEvent,
    StreamEvent,
    StreamEventType,
    parse_stream_event,
)

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "
AUTH_KEYWORDS = ("authentication", "unauthorized", "401")

_STAGE_LABELS: dict[StageName, str] = {
    StageName.TRANSLATION: "translation",
    StageName.GLOSSARY: "glossary",
    StageName.STANDARDIZATION_ANALYSIS: "standardization",
    StageName.STANDARDIZATION_APPLY: "standardization",
}


class HttpStreamTransport(StreamTransportProtocol):
    """Opens one HTTP call per stage run and yields its events.

    Streaming stages are read as newline-delimited JSON, optionally framed
    as server-sent ``data:`` lines. The analysis stage returns a single JSON
    document that is surfaced as one completion event.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_s: float | None = None,
        paths: Mapping[StageName, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Service base URL.
            token: Optional bearer token sent with every request.
            timeout_s: Optional request timeout in seconds; None disables it.
            paths: Optional endpoint path overrides per stage.
            http_client: Optional pre-configured HTTP client for dependency
                injection. If None, a client is created per stage run.
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_s = timeout_s
        self._paths = {**DEFAULT_STAGE_PATHS, **(paths or {})}
        self._http_client = http_client

    def url_for(self, stage: StageName) -> str:
        """Return the endpoint URL for a stage."""
        return f"{self._base_url}{self._paths[stage]}"

    async def open_stream(
        self, stage: StageName, request: StageRequest
    ) -> AsyncIterator[StreamEvent]:
        """Send a stage request and yield its events in arrival order.

        Args:
            stage: Stage being run.
            request: Validated request payload.

        Yields:
            StreamEvent: Typed events; unknown or malformed lines are skipped.

        Raises:
            TransportError: If the service cannot be reached or rejects the call.
        """
        if self._http_client is not None:
            async for event in self._stream_with_client(
                self._http_client, stage, request
            ):
                yield event
            return
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            async for event in self._stream_with_client(client, stage, request):
                yield event

    async def _stream_with_client(
        self,
        client: httpx.AsyncClient,
        stage: StageName,
        request: StageRequest,
    ) -> AsyncIterator[StreamEvent]:
        url = self.url_for(stage)
        payload = request.model_dump(mode="json", exclude_none=True)
        try:
            async with client.stream(
                "POST", url, json=payload, headers=self._headers()
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise _status_error(stage, url, response)
                if stage == StageName.STANDARDIZATION_ANALYSIS:
                    await response.aread()
                    yield _analysis_completion(stage, url, response)
                    return
                async for line in response.aiter_lines():
                    event = _parse_line(stage, url, line)
                    if event is not None:
                        yield event
        except httpx.TimeoutException as exc:
            raise _transport_error(
                TransportErrorCode.TIMEOUT,
                f"The {_STAGE_LABELS[stage]} service timed out. Please try again.",
                stage,
                url,
                detail=str(exc),
            ) from exc
        except httpx.TransportError as exc:
            raise _transport_error(
                TransportErrorCode.UNREACHABLE,
                f"Could not reach the {_STAGE_LABELS[stage]} service.",
                stage,
                url,
                detail=str(exc),
            ) from exc

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers


def _parse_line(stage: StageName, url: str, line: str) -> StreamEvent | None:
    if not line.strip():
        return None
    data = line
    if line.startswith(SSE_DATA_PREFIX):
        data = line[len(SSE_DATA_PREFIX) :].strip()
    if not data:
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        lowered = line.lower()
        if any(keyword in lowered for keyword in AUTH_KEYWORDS):
            raise _transport_error(
                TransportErrorCode.AUTHENTICATION,
                f"Authentication error during {_STAGE_LABELS[stage]}. "
                "Please log in again.",
                stage,
                url,
                detail=line,
            ) from None
        logger.warning("Skipping unparseable %s stream line: %s", stage, line)
        return None
    if not isinstance(payload, dict):
        logger.warning("Skipping non-object %s stream line: %s", stage, line)
        return None
    try:
        event = parse_stream_event(payload)
    except ValidationError as exc:
        logger.warning(
            "Skipping malformed %s event %r: %s", stage, payload.get("type"), exc
        )
        return None
    if event is None:
        logger.warning("Skipping unknown %s event type %r", stage, payload.get("type"))
    return event


def _analysis_completion(
    stage: StageName, url: str, response: httpx.Response
) -> CompletionEvent:
    try:
        body = response.json()
    except json.JSONDecodeError as exc:
        raise _transport_error(
            TransportErrorCode.NO_BODY,
            "The standardization service returned an unreadable response.",
            stage,
            url,
            status_code=response.status_code,
            detail=response.text,
        ) from exc
    terms = body.get("inconsistent_terms") if isinstance(body, dict) else None
    return CompletionEvent.model_validate({
        "type": StreamEventType.COMPLETION.value,
        "inconsistent_terms": terms or {},
    })


def _status_error(
    stage: StageName, url: str, response: httpx.Response
) -> TransportError:
    label = _STAGE_LABELS[stage]
    status = response.status_code
    body_error = _body_error(response)
    match status:
        case 401:
            code = TransportErrorCode.AUTHENTICATION
            message = "Authentication failed. Please log in again."
        case 403:
            code = TransportErrorCode.PERMISSION_DENIED
            message = (
                f"Access denied. You don't have permission to use {label} services."
            )
        case 400:
            code = TransportErrorCode.BAD_REQUEST
            message = body_error or f"Invalid {label} request parameters."
        case _ if status >= 500:
            code = TransportErrorCode.UNAVAILABLE
            message = (
                f"The {label} service is temporarily unavailable. "
                "Please try again later."
            )
        case _:
            code = TransportErrorCode.HTTP_ERROR
            message = body_error or (
                f"{label.capitalize()} request failed with status {status}"
            )
    return _transport_error(
        code, message, stage, url, status_code=status, detail=response.text or None
    )


def _body_error(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"] or None
    return None


def _transport_error(
    code: TransportErrorCode,
    message: str,
    stage: StageName,
    url: str,
    *,
    status_code: int | None = None,
    detail: str | None = None,
) -> TransportError:
    return TransportError(
        TransportErrorInfo(
            code=code,
            message=message,
            details=TransportErrorDetails(
                stage=stage, status_code=status_code, url=url, detail=detail
            ),
        )
    )
