"""
HTTP Tool
=========

Lets the agent call HTTP APIs.

- Uses httpx for async HTTP requests
- GET, POST, PUT, DELETE and PATCH
- JSON request bodies, custom headers, query parameters
- Retries transport errors with exponential backoff (tenacity)
- Streams the response and stops reading once the body cap is passed

The result is a dict the model can read directly:

    {
        "status_code": 200,
        "headers": {...},
        "body": {...} or "text",
        "content_type": "application/json",
        "truncated": False,
        "success": True
    }
"""

import json
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from agentloop.tools import Parameter, Tool, ToolSchema
from agentloop.utils.logger import Logger

logger = Logger("HTTPTool")

METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


class HTTPTool(Tool):
    """
    Make HTTP requests on the model's behalf.

    Example:
        tool = HTTPTool(timeout=10, max_retries=2)
        result = await tool.execute({"method": "GET", "url": "https://api.github.com"})
    """

    name = "http_request"
    description = (
        "Make HTTP requests to APIs and web services. Supports GET, POST, PUT, DELETE "
        "and PATCH with custom headers, query parameters and JSON bodies."
    )

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        user_agent: str = "agentloop/1.0",
        max_body_size: int = 10 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        """
        Args:
            timeout: Per-request timeout in seconds
            max_retries: Retries after a transport error
            retry_delay: First backoff delay; doubles after every attempt
            user_agent: User-Agent header
            max_body_size: Bytes of response body read and returned
            transport: Optional httpx transport (e.g. httpx.MockTransport)
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.max_body_size = max_body_size
        self.transport = transport

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Make HTTP requests",
            parameters=(
                Parameter("method", "string", "HTTP method", required=True, enum=METHODS),
                Parameter("url", "string", "Full URL starting with http:// or https://", required=True),
                Parameter("headers", "object", "Optional request headers"),
                Parameter("query_params", "object", "Optional query string parameters"),
                Parameter("body", "object", "Optional JSON request body"),
            ),
        )

    async def execute(self, args: dict[str, Any]) -> dict[str, Any]:
        method = str(args.get("method", "")).upper()
        if method not in METHODS:
            raise ValueError(f"invalid HTTP method: {method} (must be one of {', '.join(METHODS)})")

        url = args.get("url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")

        headers = {"User-Agent": self.user_agent}
        extra_headers = args.get("headers") or {}
        if not isinstance(extra_headers, dict):
            raise ValueError("headers must be an object")
        for key, value in extra_headers.items():
            if not isinstance(value, str):
                raise ValueError(f"header value for {key!r} must be a string")
            headers[key] = value

        params = args.get("query_params") or None
        if params is not None and not isinstance(params, dict):
            raise ValueError("query_params must be an object")

        body = args.get("body")

        response, raw = await self._send(method, url, headers, params, body)
        return self._format_response(response, raw)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"HTTP request failed, retrying in {retry_state.next_action.sleep:.1f}s",
            {"attempt": retry_state.attempt_number, "error": str(error)},
        )

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict | None,
        body: Any
    ) -> tuple[httpx.Response, bytes]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=self._log_retry,
            reraise=True,
        )

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                async for attempt in retrying:
                    with attempt:
                        return await self._fetch(client, method, url, headers, params, body)
            except httpx.TransportError as e:
                logger.error(f"HTTP request failed: {method} {url}", e)
                raise ConnectionError(
                    f"request failed after {self.max_retries} retries: {e}"
                ) from e

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: dict[str, str],
        params: dict | None,
        body: Any
    ) -> tuple[httpx.Response, bytes]:
        """Send once, reading the body only until it passes max_body_size."""
        chunks: list[bytes] = []
        received = 0
        async with client.stream(method, url, headers=headers, params=params, json=body) as response:
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                received += len(chunk)
                if received > self.max_body_size:
                    break
        return response, b"".join(chunks)

    def _format_response(self, response: httpx.Response, raw: bytes) -> dict[str, Any]:
        truncated = len(raw) > self.max_body_size
        raw = raw[: self.max_body_size]

        result: dict[str, Any] = {
            "status_code": response.status_code,
            "status": response.reason_phrase,
            "headers": dict(response.headers),
        }

        try:
            result["body"] = json.loads(raw)
            result["content_type"] = "application/json"
        except (ValueError, UnicodeDecodeError):
            result["body"] = raw.decode(response.charset_encoding or "utf-8", errors="replace")
            result["content_type"] = response.headers.get("content-type", "")

        result["truncated"] = truncated
        result["success"] = 200 <= response.status_code < 300
        return result
