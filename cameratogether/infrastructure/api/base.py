# cameratogether/infrastructure/api/base.py
import asyncio
import json
from typing import Any, Dict, Optional, Type, TypeVar
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from cameratogether.config.settings import settings
from cameratogether.domain.errors import DecodingError, HttpError, NetworkError

T = TypeVar("T", bound=BaseModel)


def _error_text(body: bytes) -> Optional[str]:
    if not body:
        return None
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return text


class APIClientBase:
    """Shared request plumbing for the Group and Template API clients.

    The client owns its ``aiohttp.ClientSession`` unless one is injected, in
    which case closing the client leaves the session alone.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.GROUP_API_URL).rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.REQUEST_TIMEOUT)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def url(self, *parts: str) -> str:
        return "/".join([self.base_url] + [quote(str(p), safe="") for p in parts])

    async def perform_request(
        self,
        method: str,
        url: str,
        expecting: Optional[Type[T]] = None,
        success_status: int = 200,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Any = None,
    ) -> Optional[T]:
        if params:
            params = {k: str(v) for k, v in params.items() if v is not None}
        session = self._get_session()
        try:
            async with session.request(
                method, url, params=params, json=json_body, data=data, timeout=self.timeout
            ) as response:
                body = await response.read()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{method} {url} failed: {type(e).__name__}") from e

        if status != success_status:
            raise HttpError(status, _error_text(body))
        if expecting is None:
            return None
        try:
            return expecting.model_validate_json(body)
        except PayloadValidationError as e:
            raise DecodingError(f"Unexpected payload from {method} {url}") from e
