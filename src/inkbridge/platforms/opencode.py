"""HTTP client for an opencode server used as the agent backend."""

import base64
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Optional

import httpx

from inkbridge.platforms.backend import AgentBackend
from inkbridge.platforms.exceptions import BackendError, BackendNotFoundError
from inkbridge.platforms.models import (
    Attachment,
    BackendEvent,
    BackendMessage,
    ContentKind,
    Fragment,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:4096"
DEFAULT_TIMEOUT = 30.0


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Group server-sent event lines into event payloads.

    Multiple ``data:`` lines of one event are joined with newlines; comment
    lines and other fields are ignored.
    """
    buffer: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            value = line[5:]
            buffer.append(value[1:] if value.startswith(" ") else value)
    if buffer:
        yield "\n".join(buffer)


def _error_text(error: Any) -> Optional[str]:
    """Flatten a backend error object into a short message."""
    if not error:
        return None
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        data = error.get("data")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return str(error.get("message") or error.get("name") or error)
    return str(error)


def _is_completed(info: dict[str, Any]) -> bool:
    timing = info.get("time") or {}
    return bool(timing.get("completed")) or info.get("status") == "completed"


def parse_event(payload: dict[str, Any]) -> Optional[BackendEvent]:
    """Normalize one decoded event from the ``/event`` stream.

    Returns:
        BackendEvent, or None for payloads without a type
    """
    event_type = payload.get("type")
    if not event_type:
        return None
    props = payload.get("properties") or {}

    if event_type == "message.part.updated":
        part = props.get("part") or {}
        session_id = part.get("sessionID")
        message_id = part.get("messageID")
        part_type = part.get("type")

        fragment = None
        if part_type in (ContentKind.TEXT.value, ContentKind.REASONING.value) and message_id:
            delta = props.get("delta")
            fragment = Fragment(
                session_id=session_id or "",
                message_id=message_id,
                kind=ContentKind(part_type),
                delta=delta if isinstance(delta, str) else None,
                snapshot=None if isinstance(delta, str) else (part.get("text") or ""),
            )

        state = part.get("state") or {}
        return BackendEvent(
            type=event_type,
            session_id=session_id,
            message_id=message_id,
            fragment=fragment,
            tool=part.get("tool") if part_type == "tool" else None,
            status=state.get("status") if isinstance(state, dict) else None,
            properties=props,
        )

    if event_type == "message.updated":
        info = props.get("info") or {}
        return BackendEvent(
            type=event_type,
            session_id=info.get("sessionID"),
            message_id=info.get("id"),
            role=info.get("role"),
            completed=_is_completed(info),
            error=_error_text(info.get("error")),
            properties=props,
        )

    if event_type == "session.deleted":
        info = props.get("info") or {}
        return BackendEvent(type=event_type, session_id=info.get("id"), properties=props)

    if event_type == "session.error":
        return BackendEvent(
            type=event_type,
            session_id=props.get("sessionID"),
            error=_error_text(props.get("error")) or "Unknown error",
            properties=props,
        )

    if event_type == "session.status":
        status = props.get("status") or {}
        return BackendEvent(
            type=event_type,
            session_id=props.get("sessionID"),
            status=status.get("type") if isinstance(status, dict) else str(status),
            properties=props,
        )

    return BackendEvent(type=event_type, session_id=props.get("sessionID"), properties=props)


def parse_message(item: dict[str, Any]) -> BackendMessage:
    """Build a BackendMessage from one entry of a session's message listing."""
    info = item.get("info") or {}
    parts = item.get("parts") or []
    text = "\n".join(
        p.get("text") or "" for p in parts if p.get("type") == ContentKind.TEXT.value
    ).strip()
    return BackendMessage(
        id=info.get("id") or "",
        role=info.get("role") or "",
        completed=_is_completed(info),
        error=_error_text(info.get("error")),
        text=text,
    )


def attachment_part(attachment: Attachment) -> dict[str, Any]:
    """Encode an attachment as an inline file part."""
    encoded = base64.b64encode(attachment.data).decode("ascii")
    part: dict[str, Any] = {
        "type": "file",
        "mime": attachment.mime,
        "url": f"data:{attachment.mime};base64,{encoded}",
    }
    if attachment.filename:
        part["filename"] = attachment.filename
    return part


class OpenCodeBackend(AgentBackend):
    """AgentBackend implementation talking to an opencode server over HTTP.

    Endpoints:
        POST /session                      create a session
        POST /session/{id}/prompt_async    submit a prompt, returns immediately
        GET  /session/{id}/message         recent messages (poll mode)
        GET  /event                        server-sent event stream
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        directory: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the backend client.

        Args:
            base_url: Root URL of the opencode server
            directory: Project directory sent with every request
            timeout: Request timeout in seconds (the event stream has no read timeout)
            client: Preconfigured client, mainly for tests
        """
        self._base_url = base_url
        self._directory = directory
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = {"directory": self._directory} if self._directory else {}
        params.update(extra)
        return params

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, params=self._params(**(params or {})), json=json_body
            )
        except httpx.HTTPError as e:
            raise BackendError(f"Backend request failed: {method} {path}: {e}") from e

        if response.status_code == 404:
            raise BackendNotFoundError(f"Not found: {method} {path}", status_code=404)
        if response.status_code >= 400:
            logger.debug(f"Backend error body for {method} {path}: {response.text}")
            raise BackendError(
                f"Backend returned HTTP {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Invalid JSON from backend for {method} {path}") from e

    async def create_session(self, title: str) -> str:
        data = await self._request("POST", "/session", json_body={"title": title})
        session_id = (data or {}).get("id") if isinstance(data, dict) else None
        if not session_id:
            raise BackendError("Backend returned no session id")
        logger.info(f"Created backend session {session_id} ({title})")
        return session_id

    async def prompt_session(
        self,
        session_id: str,
        text: str,
        attachments: Optional[list[Attachment]] = None,
    ) -> None:
        parts: list[dict[str, Any]] = [{"type": "text", "text": text}]
        parts.extend(attachment_part(a) for a in attachments or [])
        await self._request(
            "POST", f"/session/{session_id}/prompt_async", json_body={"parts": parts}
        )
        logger.debug(f"Prompted session {session_id} with {len(parts)} part(s)")

    async def get_messages(self, session_id: str, limit: int = 5) -> list[BackendMessage]:
        data = await self._request(
            "GET", f"/session/{session_id}/message", params={"limit": limit}
        )
        if isinstance(data, dict):
            data = data.get("data") or []
        return [parse_message(item) for item in data or [] if isinstance(item, dict)]

    async def subscribe_events(self) -> AsyncIterator[BackendEvent]:
        timeout = httpx.Timeout(self._timeout, read=None)
        async with self._client.stream(
            "GET", "/event", params=self._params(), timeout=timeout
        ) as response:
            if response.status_code >= 400:
                raise BackendError(
                    f"Event stream returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            async for data in iter_sse_data(response.aiter_lines()):
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.debug(f"Skipping non-JSON event data: {data[:100]}")
                    continue
                if not isinstance(payload, dict):
                    continue
                event = parse_event(payload)
                if event is not None:
                    yield event

    async def close(self) -> None:
        await self._client.aclose()

    async def health_check(self) -> bool:
        """Check if the backend answers at all."""
        try:
            response = await self._client.get("/session", params=self._params())
        except httpx.HTTPError as e:
            logger.debug(f"Backend health check failed: {e}")
            return False
        return response.status_code < 500
