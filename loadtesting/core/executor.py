"""Request executor interface and the aiohttp-backed implementation."""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import aiohttp

from .exceptions import ExecutionError, TestTimeoutError
from .models import RequestSpec, RunResult, LoadTestSpec


@dataclass
class RequestOutcome:
    """What an executor reports for a single request."""

    success: bool
    latency_ms: float
    response_bytes: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None


class RequestExecutor(Protocol):
    """Issues one request and reports how it went."""

    async def execute(self, request: RequestSpec) -> RequestOutcome:
        ...


class ExternalRunner(Protocol):
    """Delegated runner for heavy load tests (e.g. a k6 cluster)."""

    async def run(self, spec: LoadTestSpec) -> RunResult:
        ...


class HttpRequestExecutor:
    """
    Request executor that sends real HTTP requests with aiohttp.

    Use as an async context manager so the underlying session is closed:

        async with HttpRequestExecutor(timeout_seconds=30) as executor:
            outcome = await executor.execute(request)
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        connection_limit: int = 200,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.connection_limit = connection_limit
        self.default_headers = default_headers or {}
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> "HttpRequestExecutor":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            connector = aiohttp.TCPConnector(
                limit=self.connection_limit, limit_per_host=self.connection_limit
            )
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    @staticmethod
    def normalize_url(url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        return f"http://{url}"

    def _request_kwargs(self, request: RequestSpec) -> Dict[str, Any]:
        headers = {**self.default_headers, **request.headers}
        kwargs: Dict[str, Any] = {"headers": headers}

        if request.body is not None:
            if isinstance(request.body, (dict, list)):
                kwargs["json"] = request.body
            else:
                kwargs["data"] = str(request.body)
        elif request.payload and request.payload.get("template"):
            kwargs["data"] = request.payload["template"]
            headers.setdefault("Content-Type", "application/json")

        return kwargs

    async def execute(self, request: RequestSpec) -> RequestOutcome:
        """Send a single request and measure its latency."""
        if self._session is None:
            await self.open()

        start_time = time.perf_counter()
        try:
            async with self._session.request(
                request.method,
                self.normalize_url(request.url),
                **self._request_kwargs(request),
            ) as response:
                body = await response.read()
                latency_ms = (time.perf_counter() - start_time) * 1000
                is_success = 200 <= response.status < 300

                error = None
                if not is_success:
                    error = f"HTTP {response.status}"
                    text = body[:200].decode("utf-8", errors="replace")
                    try:
                        parsed = json.loads(text)
                        if isinstance(parsed, dict):
                            detail = parsed.get("error") or parsed.get("message")
                            if detail:
                                error = f"{error}: {detail}"
                    except (json.JSONDecodeError, ValueError):
                        pass

                return RequestOutcome(
                    success=is_success,
                    latency_ms=latency_ms,
                    response_bytes=len(body),
                    status_code=response.status,
                    error=error,
                )

        except asyncio.TimeoutError:
            latency_ms = (time.perf_counter() - start_time) * 1000
            error = TestTimeoutError(
                f"Request timed out after {self.timeout_seconds}s",
                timeout_seconds=self.timeout_seconds,
            )
            return RequestOutcome(success=False, latency_ms=latency_ms, error=error.message)
        except aiohttp.ClientError as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            error = ExecutionError(str(e) or e.__class__.__name__, {"url": request.url})
            self.logger.debug(f"Request to {request.url} failed: {error.message}")
            return RequestOutcome(success=False, latency_ms=latency_ms, error=error.message)
