"""ClickHouse HTTP interface client used as the dashboard's fetcher."""

from __future__ import annotations

import asyncio
import codecs
import functools
import http.client
import json
import logging
import re
from collections.abc import Callable, Mapping
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode, urlparse, urlunparse
from urllib.request import Request, urlopen

from pydantic import ValidationError

from .. import __version__
from ..contracts.error import BadInputError, ClickHouseError, InvariantError
from .block import Block
from .models import CompactPayload

logger = logging.getLogger(__name__)

_CLIENT_USER_AGENT = f"chtop/{__version__}"
_MAX_RESPONSE_BYTES = 256 * 1024 * 1024  # Cap runaway result sets (e.g. huge --limit).
_ERROR_CODE = re.compile(r"Code:\s*(\d+)")
ALLOWED_URL_SCHEMES = {"http", "https"}

# Settings every request needs so the JSON payload can be converted without guessing.
_FORMAT_SETTINGS: dict[str, str] = {
    "default_format": "JSONCompact",
    "date_time_output_format": "iso",
    "output_format_json_quote_64bit_integers": "0",
    "output_format_json_quote_denormals": "0",
}

Opener = Callable[..., Any]


def _validated_url(url: str) -> str:
    parsed = urlparse(url if "://" in url else f"http://{url}")
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise BadInputError(f"Unsupported URL scheme '{parsed.scheme}' (allowed: http, https)")
    if not parsed.hostname:
        raise BadInputError(f"URL must include a host: {url!r}")
    netloc = parsed.hostname if parsed.port is None else f"{parsed.hostname}:{parsed.port}"
    return urlunparse((parsed.scheme, netloc, parsed.path or "/", "", "", ""))


def _charset_from_content_type(content_type: str) -> str:
    for part in content_type.split(";"):
        part = part.strip()
        if part.lower().startswith("charset="):
            charset = part.split("=", 1)[1].strip().strip('"').strip("'")
            if charset:
                return charset
    return "utf-8"


def _error_from_body(body: str, fallback: str) -> ClickHouseError:
    message = body.strip() or fallback
    match = _ERROR_CODE.search(message)
    return ClickHouseError(message, code=int(match.group(1)) if match else None)


class ClickHouseClient:
    """Run queries over the HTTP interface and return :class:`Block` results.

    ``execute`` is the async entry point used by the worker: the blocking
    ``urllib`` call runs in the event loop's default executor, so the network
    round-trip is the only suspension point.
    """

    def __init__(
        self,
        url: str,
        *,
        user: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
        settings: Mapping[str, str] | None = None,
        opener: Opener | None = None,
    ) -> None:
        parsed = urlparse(url if "://" in url else f"http://{url}")
        self.url = _validated_url(url)
        self.user = user if user is not None else (parsed.username or None)
        self.password = password if password is not None else (parsed.password or None)
        self.timeout = timeout
        self.settings = dict(settings or {})
        self._opener: Opener = opener or urlopen

    def __repr__(self) -> str:
        return f"ClickHouseClient(url={self.url!r}, user={self.user!r})"

    def _build_request(
        self,
        query: str,
        database: str | None,
        settings: Mapping[str, str] | None,
    ) -> Request:
        params: dict[str, str] = dict(_FORMAT_SETTINGS)
        params.update(self.settings)
        if settings:
            params.update(settings)
        if database:
            params["database"] = database
        headers = {
            "User-Agent": _CLIENT_USER_AGENT,
            "Content-Type": "text/plain; charset=utf-8",
        }
        if self.user:
            headers["X-ClickHouse-User"] = self.user
        if self.password:
            headers["X-ClickHouse-Key"] = self.password
        return Request(  # noqa: S310 - scheme validated in _validated_url
            f"{self.url}?{urlencode(params)}",
            data=query.encode("utf-8"),
            headers=headers,
            method="POST",
        )

    def execute_sync(
        self,
        query: str,
        *,
        database: str | None = None,
        settings: Mapping[str, str] | None = None,
    ) -> Block:
        """Blocking variant of :meth:`execute`."""

        request = self._build_request(query, database, settings)
        logger.debug("Executing query on %s: %s", self.url, query)
        try:
            with self._opener(request, timeout=self.timeout) as response:  # nosec B310
                content_type = response.headers.get("Content-Type", "") or ""
                payload = response.read(_MAX_RESPONSE_BYTES + 1)
        except HTTPError as exc:
            raw = exc.read() if exc.fp is not None else b""
            body = raw.decode("utf-8", errors="replace")
            logger.debug("Query failed with HTTP %s: %s", exc.code, body.strip())
            raise _error_from_body(body, f"HTTP {exc.code}: {exc.reason}") from exc
        except (URLError, OSError, http.client.HTTPException) as exc:
            reason = getattr(exc, "reason", exc)
            raise ClickHouseError(
                f"Cannot reach {self.url}: {reason}",
                hint="Check --url and that the HTTP interface (port 8123) is enabled",
            ) from exc
        if len(payload) > _MAX_RESPONSE_BYTES:
            raise ClickHouseError(
                f"Response exceeds {_MAX_RESPONSE_BYTES} bytes", hint="Lower the view limit"
            )
        charset = _charset_from_content_type(content_type)
        try:
            codecs.lookup(charset)
        except LookupError as exc:
            raise ClickHouseError(f"Unsupported response charset {charset!r}") from exc
        return self._parse(payload, charset)

    async def execute(
        self,
        query: str,
        *,
        database: str | None = None,
        settings: Mapping[str, str] | None = None,
    ) -> Block:
        loop = asyncio.get_running_loop()
        call = functools.partial(self.execute_sync, query, database=database, settings=settings)
        return await loop.run_in_executor(None, call)

    @staticmethod
    def _parse(payload: bytes, encoding: str) -> Block:
        if not payload.strip():
            return Block()
        text = payload.decode(encoding, errors="replace")
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            # The server reports errors raised mid-stream as plain text after a 200 status.
            raise _error_from_body(text, "Server returned a non-JSON response") from exc
        try:
            model = CompactPayload.model_validate(document)
        except ValidationError as exc:
            raise InvariantError(f"Unexpected response layout: {exc}") from exc
        return Block.from_payload(model)


__all__ = ["ClickHouseClient", "ALLOWED_URL_SCHEMES"]
