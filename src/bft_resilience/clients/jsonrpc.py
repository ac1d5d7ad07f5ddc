"""JSON-RPC 2.0 helpers shared by the execution layer client and the consistency checker."""

from __future__ import annotations

import itertools
from typing import Any

import httpx
from typing_extensions import Final

from bft_resilience.types.exceptions import RpcError

DEFAULT_TIMEOUT: Final = 60.0
"""HTTP request timeout in seconds."""

BLOCK_NUMBER_REQUEST: Final[dict[str, Any]] = {
    "jsonrpc": "2.0",
    "method": "eth_blockNumber",
    "params": [],
    "id": 1,
}
"""Payload asking a node for its latest block number."""

_request_ids = itertools.count(1)


def build_request(method: str, params: list[Any] | None = None) -> dict[str, Any]:
    """Build a JSON-RPC request payload with a fresh id."""
    return {
        "jsonrpc": "2.0",
        "method": method,
        "params": params if params is not None else [],
        "id": next(_request_ids),
    }


def is_hex_quantity(value: Any) -> bool:
    """True for 0x-prefixed hex strings such as `"0x1a"`."""
    if not isinstance(value, str) or not value.startswith("0x") or len(value) < 3:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True


def parse_quantity(value: Any) -> int:
    """
    Decode a JSON-RPC quantity.

    Accepts 0x-prefixed hex strings, decimal strings, and integers.

    Raises:
        ValueError: If the value is not a non-negative integer.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a quantity: {value!r}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.startswith("0x"):
        result = int(value, 16)
    elif isinstance(value, str):
        result = int(value, 10)
    else:
        raise ValueError(f"Not a quantity: {value!r}")
    if result < 0:
        raise ValueError(f"Negative quantity: {value!r}")
    return result


async def post_json_rpc(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """
    POST a JSON-RPC payload and return the response envelope.

    Raises:
        RpcError: On transport failure, non-2xx status, undecodable body,
            or a JSON-RPC error object.
    """
    try:
        response = await client.post(url, json=payload)
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as exc:
        raise RpcError(url, f"HTTP {exc.response.status_code}: {exc.response.text[:200]}") from exc
    except httpx.RequestError as exc:
        raise RpcError(url, f"network error: {exc}") from exc
    except ValueError as exc:
        raise RpcError(url, f"invalid JSON response: {exc}") from exc

    if not isinstance(body, dict):
        raise RpcError(url, f"unexpected response shape: {type(body).__name__}")

    error = body.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message", error) if isinstance(error, dict) else error
        raise RpcError(url, str(message), code=code)

    return body
