"""Thin aiohttp wrapper used by cloud clients.

Every failure surfaces as :class:`HttpError`: HTTP error statuses keep their
code, connection problems, timeouts and undecodable bodies use status 0.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Literal

import aiohttp
from loguru import logger

type ResponseFormat = Literal["json", "text"]

_RETRYABLE = frozenset({0, 429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    status: int
    body: str
    method: str = ""
    path: str = ""

    @property
    def retryable(self) -> bool:
        return self.status in _RETRYABLE

    def __str__(self) -> str:
        where = f" ({self.method} {self.path})" if self.method else ""
        return f"HTTP {self.status}{where}: {self.body[:200]}"


@dataclass(frozen=True, slots=True)
class BearerAuth:
    token: str = field(repr=False)

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class HttpClient:
    """One lazily created ``aiohttp.ClientSession`` bound to ``base_url``.

    Example:
        async with HttpClient("https://api.digitalocean.com/v2", BearerAuth(token)) as http:
            droplets = await http.request("GET", "/droplets", params={"tag_name": "nodeward"})
    """

    def __init__(
        self,
        base_url: str,
        auth: BearerAuth | None = None,
        *,
        timeout: float = 30,
        default_headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Accept": "application/json", **(default_headers or {})}
        if auth is not None:
            self._headers.update(auth.headers())
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    def _session_for_request(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers)
        return self._session

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | list[Any] | None = None,
        params: dict[str, Any] | None = None,
        format: ResponseFormat = "json",
    ) -> Any:
        """Send one request and decode the body; an empty body decodes to None."""
        session = self._session_for_request()
        started = time.monotonic()
        try:
            async with session.request(method, f"{self._base_url}{path}", json=json, params=params) as resp:
                raw = await resp.read()
                elapsed_ms = (time.monotonic() - started) * 1000
                self._log.debug(
                    "{method} {path} -> {status} in {ms:.0f}ms",
                    method=method, path=path, status=resp.status, ms=elapsed_ms,
                )
                if resp.status >= 400:
                    raise HttpError(resp.status, raw.decode(errors="replace"), method, path)
                try:
                    return self._decode(raw, format, resp.charset)
                except ValueError as e:
                    raise HttpError(0, f"invalid JSON body: {e}", method, path) from e
        except aiohttp.ClientError as e:
            raise HttpError(0, str(e) or type(e).__name__, method, path) from e
        except TimeoutError as e:
            raise HttpError(0, "request timed out", method, path) from e

    @staticmethod
    def _decode(raw: bytes, format: ResponseFormat, charset: str | None) -> Any:
        if not raw:
            return None
        text = raw.decode(charset or "utf-8", errors="replace")
        return text if format == "text" else json.loads(text)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()
