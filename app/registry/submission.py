"""Metadata submission to the registry with a single network retry.

Policy: a network failure is retried exactly once after a fixed
SUBMIT_RETRY_DELAY_SECONDS (~300 ms); a second failure is terminal.
Anything that is not a network failure propagates immediately.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import httpx

from app.core.config import SUBMIT_RETRY_DELAY_SECONDS
from app.registry.contract import RegistryAdapter, to_mint_app_input, to_update_app_input
from app.registry.exceptions import NetworkError
from app.registry.metadata import RegistrationContext

log = logging.getLogger(__name__)

T = TypeVar("T")

_NETWORK_RE = re.compile(r"network", re.IGNORECASE)


def is_network_error(exc: BaseException) -> bool:
    if isinstance(exc, (NetworkError, httpx.TransportError)):
        return True
    return bool(_NETWORK_RE.search(str(exc)))


async def submit_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    delay: float = SUBMIT_RETRY_DELAY_SECONDS,
) -> T:
    """Run `operation`, retrying once after `delay` seconds on a network error."""
    try:
        return await operation()
    except Exception as e:
        if not is_network_error(e):
            raise
        log.warning(f"submission network error, retrying once in {delay}s: {e}")

    await asyncio.sleep(delay)
    return await operation()


# =============================================================================
# Error normalization
# =============================================================================

@dataclass(frozen=True)
class NormalizedContractError:
    code: str
    message: str
    cause: Optional[BaseException] = None


_REVERT_REASON_RE = re.compile(r"revert (?:reason: )?(.+?)(?:\n|$)", re.IGNORECASE)

# First matching rule wins
_ERROR_RULES = (
    ("USER_REJECTED", re.compile(r"user rejected|user denied|rejected", re.IGNORECASE),
     "Transaction rejected by user"),
    ("INSUFFICIENT_FUNDS", re.compile(r"insufficient funds|insufficient balance", re.IGNORECASE),
     "Insufficient funds for transaction"),
    ("NONCE_ERROR", re.compile(r"nonce|sequence", re.IGNORECASE),
     "Transaction nonce/sequence error"),
    ("GAS_ERROR", re.compile(r"gas", re.IGNORECASE),
     "Gas estimation failed or out of gas"),
    ("NETWORK_ERROR", re.compile(r"network|connection|timeout", re.IGNORECASE),
     "Network connection error"),
)


def normalize_contract_error(exc: BaseException) -> NormalizedContractError:
    """Map wallet/RPC error text to a stable code and user-facing message."""
    message = str(exc) or "Transaction failed"

    for code, pattern, text in _ERROR_RULES:
        if pattern.search(message):
            return NormalizedContractError(code, text, exc)

    if re.search(r"revert", message, re.IGNORECASE):
        match = _REVERT_REASON_RE.search(message)
        reason = match.group(1) if match else "Transaction reverted"
        return NormalizedContractError("CONTRACT_REVERT", reason, exc)

    return NormalizedContractError("UNKNOWN", message, exc)


# =============================================================================
# Publishing
# =============================================================================

async def publish_metadata(
    adapter: RegistryAdapter,
    app: Mapping[str, Any],
    *,
    current_version: Optional[str] = None,
    registration: Optional[RegistrationContext] = None,
) -> str:
    """Mint (no current version) or update an app record; returns the tx hash."""
    if current_version is None:
        payload = to_mint_app_input(app, registration)
        log.info(f"minting app did={payload.did} hash={payload.data_hash}")
        return await submit_with_retry(lambda: adapter.mint(payload))

    update = to_update_app_input(app, current_version, registration)
    log.info(f"updating app did={update.did} major={update.major} hash={update.new_data_hash}")
    return await submit_with_retry(lambda: adapter.update(update))
