"""Controlling-wallet discovery for EVM contracts over JSON-RPC.

Tries the common ownership accessors in order, then the EIP-1967 proxy
admin slot:
1. owner()    0x8da5cb5b
2. admin()    0xf851a440
3. getOwner() 0x893d20e8
4. eth_getStorageAt(EIP-1967 admin slot)

The zero address never counts as a controller. Each RPC call is retried
with exponential backoff (RPC_MAX_ATTEMPTS, RPC_BACKOFF_SECONDS).
"""

import asyncio
import itertools
import logging
import re
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Protocol, TypeVar

import httpx

from app.core.config import (
    LOCAL_CHAIN_IDS,
    LOCAL_RPC_URL,
    RPC_BACKOFF_SECONDS,
    RPC_MAX_ATTEMPTS,
    RPC_TIMEOUT_SECONDS,
    RPC_URL_OVERRIDES,
    THIRDWEB_CLIENT_ID,
)
from app.registry.exceptions import DiscoveryError, NetworkError
from app.registry.identity import parse_did_pkh

log = logging.getLogger(__name__)

T = TypeVar("T")

OWNERSHIP_ACCESSORS = (
    ("owner()", "0x8da5cb5b"),
    ("admin()", "0xf851a440"),
    ("getOwner()", "0x893d20e8"),
)

# bytes32(uint256(keccak256("eip1967.proxy.admin")) - 1)
EIP1967_ADMIN_SLOT = "0xb53127684a568b3173ae13b9f8a6016e243e63b6e8ee1178d6a717850b5d6103"

ZERO_ADDRESS = "0x" + "0" * 40

_WORD_RE = re.compile(r"0x[0-9a-fA-F]{40,64}")


class OwnershipResolver(Protocol):
    """Finds the account controlling the resource behind an identity."""

    async def resolve_controller(self, identity: str) -> Optional[str]:
        """Controlling account (lowercase), or None if no standard accessor exists."""
        ...


class JsonRpcError(Exception):
    """JSON-RPC error object returned by the node (e.g. execution reverted)."""


def get_rpc_url(chain_id: int) -> str:
    """RPC endpoint for a chain: explicit override, local node, or thirdweb edge.

    Raises:
        DiscoveryError: If no endpoint can be derived.
    """
    if chain_id in RPC_URL_OVERRIDES:
        return RPC_URL_OVERRIDES[chain_id]
    if chain_id in LOCAL_CHAIN_IDS:
        return LOCAL_RPC_URL
    if chain_id <= 0:
        raise DiscoveryError(f"Invalid chainId: {chain_id}. Must be a positive integer.")
    if not THIRDWEB_CLIENT_ID.strip():
        raise DiscoveryError(
            f"No RPC endpoint configured for chain {chain_id}. "
            "Set REGISTRY_RPC_URLS or THIRDWEB_CLIENT_ID."
        )
    return f"https://{chain_id}.rpc.thirdweb.com/{THIRDWEB_CLIENT_ID}"


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = RPC_MAX_ATTEMPTS,
    initial_delay: float = RPC_BACKOFF_SECONDS,
) -> T:
    """Retry transient RPC failures with exponential backoff (0.5s, 1s, 2s, ...).

    Only NetworkError is retried; node-reported errors are final.
    """
    last_error: Optional[NetworkError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except NetworkError as e:
            last_error = e
            if attempt == max_attempts:
                break
            delay = initial_delay * (2 ** (attempt - 1))
            log.info(f"RPC attempt {attempt} failed, retrying in {delay}s: {e}")
            await asyncio.sleep(delay)
    raise NetworkError(f"Operation failed after {max_attempts} attempts: {last_error}")


def word_to_address(word: Any) -> Optional[str]:
    """Address held in the low 20 bytes of a 32-byte word; None for empty/zero."""
    if not isinstance(word, str) or not _WORD_RE.fullmatch(word):
        return None
    address = "0x" + word[-40:].lower()
    return None if address == ZERO_ADDRESS else address


class RpcOwnershipResolver:
    """OwnershipResolver backed by a chain's JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url_for: Callable[[int], str] = get_rpc_url,
        timeout: float = RPC_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._rpc_url_for = rpc_url_for
        self._timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _call(self, client: httpx.AsyncClient, url: str, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException:
            raise NetworkError(f"RPC timeout after {self._timeout}s calling {method}")
        except httpx.HTTPStatusError as e:
            raise NetworkError(f"RPC HTTP {e.response.status_code} calling {method}")
        except httpx.RequestError as e:
            raise NetworkError(f"RPC request failed: {e}")
        except ValueError as e:
            raise NetworkError(f"RPC returned invalid JSON: {e}")

        if not isinstance(body, dict):
            raise JsonRpcError(f"Unexpected RPC response for {method}")
        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise JsonRpcError(f"{method} failed: {message}")
        return body.get("result")

    async def resolve_controller(self, identity: str) -> Optional[str]:
        """Discover the controlling wallet of an eip155 did:pkh contract.

        Raises:
            DiscoveryError: Identity is not an EVM did:pkh, or no RPC URL.
            NetworkError: The node never answered any discovery call.
        """
        account = parse_did_pkh(identity)
        if account is None or account.namespace != "eip155":
            raise DiscoveryError.unsupported_identity(identity)

        chain_id = int(account.reference)
        contract = account.address.lower()
        url = self._rpc_url_for(chain_id)
        log.debug(f"discovering controller chain={chain_id} contract={contract}")

        probes = [
            (name, "eth_call", [{"to": contract, "data": selector}, "latest"])
            for name, selector in OWNERSHIP_ACCESSORS
        ]
        probes.append(("EIP-1967", "eth_getStorageAt", [contract, EIP1967_ADMIN_SLOT, "latest"]))

        # An execution revert is still an answer; only transport failures count as an outage
        answered = False
        last_error: Optional[NetworkError] = None

        async with self._session() as client:
            for name, method, params in probes:
                call = partial(self._call, client, url, method, params)
                try:
                    result = await with_retry(call)
                except JsonRpcError as e:
                    answered = True
                    log.debug(f"{name} failed on {contract}: {e}")
                    continue
                except NetworkError as e:
                    last_error = e
                    log.debug(f"{name} unreachable on {contract}: {e}")
                    continue
                answered = True
                controller = word_to_address(result)
                if controller:
                    log.info(f"controller found via {name} contract={contract} controller={controller}")
                    return controller

        if not answered and last_error is not None:
            log.warning(f"RPC unreachable during discovery contract={contract} chain={chain_id}: {last_error}")
            raise last_error

        log.info(f"no ownership accessor found contract={contract} chain={chain_id}")
        return None
