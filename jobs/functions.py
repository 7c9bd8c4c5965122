"""Remote automation jobs: invoke serverless functions over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class FunctionInvocationError(RuntimeError):
    def __init__(self, function: str, message: str, status_code: int | None = None):
        super().__init__(f"{function}: {message}")
        self.function = function
        self.status_code = status_code


class FunctionsClient:
    """Thin client for the backend's serverless function endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return headers

    async def invoke(self, function: str, payload: dict | None = None) -> Any:
        """POST *payload* to *function* and return the decoded JSON body.

        Raises FunctionInvocationError on transport errors, non-2xx replies
        and bodies that report ``success: false`` or carry an ``error``.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self._timeout, transport=self._transport,
            ) as client:
                response = await client.post(f"/{function}", json=payload or {}, headers=self._headers())
        except httpx.HTTPError as e:
            raise FunctionInvocationError(function, f"request failed: {e}") from e

        if response.is_error:
            raise FunctionInvocationError(
                function, f"HTTP {response.status_code}: {response.text[:200]}", response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            return response.text

        if isinstance(body, dict):
            if body.get("success") is False or body.get("error"):
                raise FunctionInvocationError(
                    function, str(body.get("error") or "reported failure"), response.status_code,
                )
        logger.debug("Function invoked", extra={"function": function, "status_code": response.status_code})
        return body


def make_analysis_job(
    client: FunctionsClient,
    function: str = "batch-analyze-posts",
) -> Callable[[int], Awaitable[None]]:
    """Job that asks the analysis function to score up to *batch_size* posts."""

    async def run_analysis(batch_size: int) -> None:
        result = await client.invoke(function, {"limit": batch_size})
        if isinstance(result, dict):
            logger.info(
                "Analysis batch done",
                extra={"batch_size": batch_size,
                       "processed": result.get("processed", result.get("analyzed"))},
            )

    return run_analysis


def make_sync_job(
    client: FunctionsClient,
    function: str = "inoreader-rss-ingestion",
) -> Callable[[], Awaitable[None]]:
    """Job that pulls new items from the external source into the database."""

    async def run_sync() -> None:
        result = await client.invoke(function)
        if isinstance(result, dict):
            logger.info("Sync done", extra={"inserted": result.get("inserted", result.get("newPosts"))})

    return run_sync
