"""Async PostgREST client for the vault's Supabase project.

This is the single point of Supabase HTTP interaction for the share store,
record store and audit sink. The httpx client is injected by the caller
(the app factory owns its lifecycle) so nothing here holds global state.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

import httpx

from phdvault.app.observability import get_logger

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
    SupabaseTransportError,
)

logger = get_logger(__name__)

# A filter value is either a bare value (implies "eq") or an (op, value) pair.
FilterSpec = Mapping[str, "tuple[str, Any] | Any"]

_SUPPORTED_OPS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "is", "in"})


def _encode_filter_value(op: str, value: Any) -> str:
    if op not in _SUPPORTED_OPS:
        raise ValueError(f"unsupported PostgREST operator {op!r}")

    if op == "is":
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if op == "in":
        if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
            raise ValueError("in operator requires an iterable of values")
        items = []
        for v in value:
            if isinstance(v, str):
                # Quote strings inside in.(...) so commas in ids stay literal.
                items.append(json.dumps(v))
            elif v is None:
                items.append("null")
            else:
                items.append(str(v))
        return f"({','.join(items)})"

    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filters_to_params(filters: FilterSpec | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for col, spec in (filters or {}).items():
        if isinstance(spec, tuple) and len(spec) == 2:
            op, val = spec
        else:
            op, val = "eq", spec
        params[str(col)] = f"{op}.{_encode_filter_value(str(op), val)}"
    return params


class SupabaseClient:
    """Minimal async PostgREST client authenticated with the service role."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        http_client: httpx.AsyncClient,
        schema: str = "public",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._schema = schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    def _headers(self, method: str, *, representation: bool = False) -> dict[str, str]:
        # Never log these headers.
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
            "Accept-Profile": self._schema,
        }
        if method != "GET":
            headers["Content-Profile"] = self._schema
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = hint = None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
                hint = payload.get("hint")
        except ValueError:
            pass

        err_cls: type[SupabaseError]
        if resp.status_code in (401, 403):
            err_cls = SupabaseAuthError
        elif resp.status_code == 404:
            err_cls = SupabaseNotFoundError
        elif resp.status_code == 409:
            err_cls = SupabaseConflictError
        else:
            err_cls = SupabaseError

        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
            hint=hint,
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_body: Any = None,
        representation: bool = False,
    ) -> list[dict[str, Any]]:
        url = f"{self.base_rest_url}/{table}"
        try:
            resp = await self._client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._headers(method, representation=representation),
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            logger.warning("postgrest_timeout", method=method, table=table)
            raise SupabaseTransportError(status_code=504, message="PostgREST request timed out") from exc
        except httpx.TransportError as exc:
            logger.warning("postgrest_transport_error", method=method, table=table, error=type(exc).__name__)
            raise SupabaseTransportError(status_code=503, message="PostgREST unreachable") from exc

        self._raise_for_error(resp)
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message=f"expected list response from {method} {table}")
        return payload

    async def select(
        self,
        table: str,
        filters: FilterSpec | None = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        params = _filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return await self._request("GET", table, params=params)

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | list[Mapping[str, Any]],
    ) -> list[dict[str, Any]]:
        return await self._request("POST", table, json_body=data, representation=True)

    async def update(
        self,
        table: str,
        filters: FilterSpec,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """PATCH rows matching *filters* and return the rows that changed.

        PostgREST applies the filters and the update in one statement, so a
        filter such as ``accessed_at=is.null`` makes the update conditional.
        """
        if not filters:
            raise ValueError("refusing to update without filters")
        return await self._request(
            "PATCH",
            table,
            params=_filters_to_params(filters),
            json_body=dict(data),
            representation=True,
        )
