"""
chains/endpoints.py - Endpoint handles and the endpoint pool.

An Endpoint is one JSON-RPC node connection. It owns a pooled
httpx.AsyncClient that is created on first use and reused across calls;
reconnecting is the client's concern. Identity (url, chain_id) never
changes after construction.

An EndpointPool is the ordered, immutable [primary, *fallbacks] sequence
built once per provider.
"""

import itertools
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import httpx

from core.constants import JSONRPC_VERSION, LOGGER_ROOT
from core.exceptions import ConfigurationError, EndpointError, NodeError
from core.logging import get_logger, mask_url

logger = get_logger(f"{LOGGER_ROOT}.{__name__}")


class Endpoint:
    """
    JSON-RPC handle for a single node.

    Raises EndpointError (or NodeError for JSON-RPC error objects) on any
    failed request; retry and failover are the caller's concern.
    """

    def __init__(
        self,
        url: str,
        chain_id: int,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._chain_id = chain_id
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._request_ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def display_url(self) -> str:
        """URL safe for logs (API key masked)."""
        return mask_url(self._url)

    def __repr__(self) -> str:
        return f"Endpoint({self.display_url!r}, chain_id={self._chain_id})"

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout_seconds),
                limits=httpx.Limits(max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: list | None = None) -> Any:
        """
        Send one JSON-RPC request.

        Args:
            method: RPC method name
            params: Method parameters

        Returns:
            The "result" member of the response

        Raises:
            NodeError: Node returned a JSON-RPC error object
            EndpointError: Transport failure, HTTP error status or bad payload
        """
        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "params": params or [],
            "id": next(self._request_ids),
        }
        details = {"url": self.display_url, "method": method}

        client = self._get_client()
        try:
            resp = await client.post(self._url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as e:
            raise EndpointError(f"Transport timeout: {e}", details) from e
        except httpx.HTTPStatusError as e:
            raise EndpointError(
                f"HTTP {e.response.status_code} from node",
                {**details, "status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise EndpointError(f"Transport error: {e}", details) from e
        except ValueError as e:
            raise EndpointError(f"Invalid JSON-RPC response: {e}", details) from e

        if not isinstance(body, dict):
            raise EndpointError("Invalid JSON-RPC response: not an object", details)

        if body.get("error") is not None:
            error = body["error"]
            if isinstance(error, dict):
                message = error.get("message", str(error))
                rpc_code = error.get("code")
            else:
                message, rpc_code = str(error), None
            logger.debug(
                "RPC error response",
                extra={"context": {**details, "rpc_code": rpc_code, "error": message}},
            )
            raise NodeError(f"RPC error: {message}", rpc_code=rpc_code, details=details)

        if "result" not in body:
            raise EndpointError("Invalid JSON-RPC response: missing result", details)

        return body["result"]

    async def get_block_number(self) -> int:
        """Latest block number."""
        return _hex_to_int(await self.request("eth_blockNumber"), "eth_blockNumber")

    async def get_chain_id(self) -> int:
        """Chain ID reported by the node."""
        return _hex_to_int(await self.request("eth_chainId"), "eth_chainId")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        """
        Read-only contract call.

        Args:
            to: Contract address
            data: ABI-encoded call data
            block: Block tag or hex block number

        Returns:
            Hex-encoded return data
        """
        return await self.request("eth_call", [{"to": to, "data": data}, block])


def _hex_to_int(value: Any, method: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(value, 16)
    except (TypeError, ValueError) as e:
        raise EndpointError(
            f"Invalid {method} result: {value!r}", {"method": method}
        ) from e


@dataclass(frozen=True)
class EndpointPool:
    """
    Ordered endpoints: primary first, then fallbacks in configured order.

    Iterating always starts again from the primary.
    """

    endpoints: tuple[Endpoint, ...]

    def __post_init__(self):
        object.__setattr__(self, "endpoints", tuple(self.endpoints))
        if not self.endpoints:
            raise ConfigurationError("Endpoint pool must contain at least one endpoint")

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self.endpoints)

    def __len__(self) -> int:
        return len(self.endpoints)

    @property
    def primary(self) -> Endpoint:
        return self.endpoints[0]

    @property
    def fallbacks(self) -> tuple[Endpoint, ...]:
        return self.endpoints[1:]

    @property
    def urls(self) -> list[str]:
        return [endpoint.url for endpoint in self.endpoints]

    async def aclose(self) -> None:
        """Close every endpoint's HTTP client."""
        for endpoint in self.endpoints:
            await endpoint.aclose()
