from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
import logfire

from .config import SupabaseConfig
from .exceptions import (
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseConfigError,
    SupabaseFunctionError,
    SupabaseNotFoundError,
    SupabaseRateLimitError,
)
from .models import FunctionResponse, parse_content_range

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        for key in ("message", "error", "msg", "hint"):
            if data.get(key):
                return str(data[key])
    return response.text or response.reason_phrase


class SupabaseClient:
    def __init__(
        self,
        config: SupabaseConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or SupabaseConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self.config.base_url or not self.config.anon_key:
            raise SupabaseConfigError(
                "Supabase url and anon_key are required. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY."
            )

        logger.info(
            f"Initialized SupabaseClient (url={self.config.base_url}, "
            f"user_token={'yes' if self.config.access_token else 'no'})"
        )

    async def __aenter__(self) -> SupabaseClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            headers=self._headers(),
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed SupabaseClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "SupabaseClient must be used as async context manager"
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.config.anon_key,
            "Authorization": f"Bearer {self.config.bearer_token}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        max_attempts = self.config.max_retries if retry else 1
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < max_attempts:
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    params=params,
                    json=json_data,
                    headers=headers,
                    timeout=timeout if timeout is not None else self.config.timeout_seconds,
                )

                if response.status_code in (401, 403):
                    raise SupabaseAuthError(
                        f"Not authorized: {_error_message(response)}",
                        status_code=response.status_code,
                    )
                elif response.status_code == 404:
                    raise SupabaseNotFoundError(
                        f"Resource not found: {path}", status_code=404
                    )
                elif response.status_code == 429 or response.status_code >= 500:
                    last_error = SupabaseAPIError(
                        _error_message(response), status_code=response.status_code
                    )
                    retry_count += 1
                    if retry_count >= max_attempts:
                        if response.status_code == 429:
                            raise SupabaseRateLimitError(
                                "Rate limit exceeded", status_code=429
                            )
                        break
                    wait_time = 2 ** (retry_count - 1)
                    logger.warning(
                        f"Supabase returned {response.status_code} for {path}, "
                        f"retrying in {wait_time}s..."
                    )
                    await asyncio.sleep(wait_time)
                    continue
                elif response.status_code >= 400:
                    raise SupabaseAPIError(
                        _error_message(response), status_code=response.status_code
                    )

                return response

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < max_attempts:
                    logger.warning(f"Timeout on {path}, retrying ({retry_count})...")
                    await asyncio.sleep(1)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error on {path}: {e}")
                break

        status_code = getattr(last_error, "status_code", None)
        raise SupabaseAPIError(
            f"Request failed after {retry_count} attempt(s): {last_error}",
            status_code=status_code,
        )

    def _table_path(self, table: str) -> str:
        return f"{self.config.rest_path}/{table}"

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows using PostgREST filter syntax, e.g. ``{"id": "eq.42"}``."""
        params: dict[str, Any] = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit

        response = await self._request("GET", self._table_path(table), params=params)
        try:
            data = response.json()
        except ValueError:
            raise SupabaseAPIError(
                f"Invalid JSON from {table}", status_code=response.status_code
            )
        if not isinstance(data, list):
            raise SupabaseAPIError(
                f"Unexpected response shape from {table}: {type(data).__name__}"
            )
        return data

    async def select_one(
        self,
        table: str,
        filters: dict[str, str],
        columns: str = "*",
    ) -> dict[str, Any] | None:
        rows = await self.select(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, filters: dict[str, str] | None = None) -> int:
        params: dict[str, Any] = {"select": "*"}
        if filters:
            params.update(filters)

        response = await self._request(
            "HEAD",
            self._table_path(table),
            params=params,
            headers={"Prefer": "count=exact"},
        )
        return parse_content_range(response.headers.get("content-range"))

    async def invoke_function(
        self,
        function_name: str,
        body: dict[str, Any] | None = None,
    ) -> FunctionResponse:
        """Invoke an edge function once; invocations are never retried."""
        path = f"{self.config.functions_path}/{function_name}"
        logger.info(f"Invoking function {function_name}")

        with logfire.span("supabase.invoke_function", function=function_name):
            try:
                response = await self._request(
                    "POST",
                    path,
                    json_data=body or {},
                    timeout=self.config.function_timeout_seconds,
                    retry=False,
                )
            except SupabaseAPIError as e:
                raise SupabaseFunctionError(
                    str(e), function_name=function_name, status_code=e.status_code
                ) from e

            try:
                data = response.json()
            except ValueError:
                data = {"message": response.text}

        result = FunctionResponse.from_api(function_name, data)
        logger.info(
            f"Function {function_name} acknowledged: success={result.success} "
            f"job_id={result.job_id}"
        )
        return result


def create_supabase_client(
    url: str | None = None,
    anon_key: str | None = None,
    access_token: str | None = None,
    config: SupabaseConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SupabaseClient:
    """Create a SupabaseClient instance."""
    config = config or SupabaseConfig()
    updates: dict[str, Any] = {}
    if url:
        updates["url"] = url
    if anon_key:
        updates["anon_key"] = anon_key
    if access_token:
        updates["access_token"] = access_token
    if updates:
        config = config.model_copy(update=updates)
    return SupabaseClient(config=config, transport=transport)
