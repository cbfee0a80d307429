"""Transfer-proof amounts (tx-encoded-value).

When the connected wallet is not the discovered controller, the
controller proves joint control by sending an exact, deterministic amount
of the chain's native token to the connected wallet:

    Amount = BASE(purpose, chain) + (U256(keccak256(Seed)) mod RANGE)
    RANGE  = BASE // 10
    Seed   = JCS({domain, subjectDidHash, counterpartyIdHash, proofPurpose})

Amounts are integers in the smallest unit (wei).
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from app.registry.canonical import canonicalize, keccak256_hex
from app.registry.identity import (
    build_pkh_did,
    compute_did_hash,
    get_chain_id_from_did_pkh,
    normalize_did,
)

AMOUNT_DOMAIN = "OMATrust:Amount:v1"


class ProofPurpose(str, Enum):
    SHARED_CONTROL = "shared-control"
    COMMERCIAL_TX = "commercial-tx"


@dataclass(frozen=True)
class ChainConfig:
    symbol: str
    block_time: float
    explorer: str
    base: Dict[ProofPurpose, int]
    decimals: int = 18


_EVM_BASE = {ProofPurpose.SHARED_CONTROL: 10**14, ProofPurpose.COMMERCIAL_TX: 10**12}
_OMA_BASE = {ProofPurpose.SHARED_CONTROL: 10**16, ProofPurpose.COMMERCIAL_TX: 10**14}

CHAIN_CONFIGS: Dict[int, ChainConfig] = {
    1: ChainConfig("ETH", 12, "https://etherscan.io", _EVM_BASE),
    11155111: ChainConfig("ETH", 12, "https://sepolia.etherscan.io", _EVM_BASE),
    137: ChainConfig("POL", 2, "https://polygonscan.com", _EVM_BASE),
    8453: ChainConfig("ETH", 2, "https://basescan.org", _EVM_BASE),
    10: ChainConfig("ETH", 2, "https://optimistic.etherscan.io", _EVM_BASE),
    42161: ChainConfig("ETH", 0.25, "https://arbiscan.io", _EVM_BASE),
    6623: ChainConfig("OMA", 3, "https://explorer.chain.oma3.org", _OMA_BASE),
    66238: ChainConfig("OMA", 3, "https://explorer.testnet.chain.oma3.org", _OMA_BASE),
}


@dataclass(frozen=True)
class TransferInstructions:
    """What the controller has to send, and to whom."""
    chain_id: int
    amount_wei: int
    formatted: str
    symbol: str
    recipient: str
    sender: str
    purpose: ProofPurpose = ProofPurpose.SHARED_CONTROL


def is_chain_supported(chain_id: int) -> bool:
    return chain_id in CHAIN_CONFIGS


def get_chain_config(chain_id: int) -> ChainConfig:
    """Raises ValueError for chains without transfer-proof support."""
    try:
        return CHAIN_CONFIGS[chain_id]
    except KeyError:
        supported = ", ".join(str(c) for c in CHAIN_CONFIGS)
        raise ValueError(
            f"tx-encoded-value not supported for chain {chain_id}. Supported chains: {supported}"
        )


def get_chain_constants(chain_id: int, purpose: ProofPurpose) -> Tuple[int, int]:
    """(BASE, RANGE) for a chain and proof purpose."""
    base = get_chain_config(chain_id).base[ProofPurpose(purpose)]
    return base, base // 10


def construct_seed(subject_did_hash: str, counterparty_did_hash: str, purpose: ProofPurpose) -> bytes:
    seed = {
        "domain": AMOUNT_DOMAIN,
        "subjectDidHash": subject_did_hash,
        "counterpartyIdHash": counterparty_did_hash,
        "proofPurpose": ProofPurpose(purpose).value,
    }
    return canonicalize(seed).encode("utf-8")


def calculate_transfer_amount(
    subject_did: str,
    counterparty_did: str,
    chain_id: int,
    purpose: ProofPurpose = ProofPurpose.SHARED_CONTROL,
) -> int:
    base, spread = get_chain_constants(chain_id, purpose)
    seed = construct_seed(compute_did_hash(subject_did), compute_did_hash(counterparty_did), purpose)
    return base + int(keccak256_hex(seed), 16) % spread


def format_units(value: int, decimals: int) -> str:
    """Decimal string with at least one fractional digit: 10**18 -> "1.0"."""
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    digits = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{digits}"


def format_transfer_amount(amount: int, chain_id: int) -> Dict[str, str]:
    config = get_chain_config(chain_id)
    return {
        "formatted": format_units(amount, config.decimals),
        "symbol": config.symbol,
        "wei": str(amount),
    }


def get_explorer_tx_url(chain_id: int, tx_hash: str) -> str:
    return f"{get_chain_config(chain_id).explorer}/tx/{tx_hash}"


def get_explorer_address_url(chain_id: int, address: str) -> str:
    return f"{get_chain_config(chain_id).explorer}/address/{address}"


def estimate_blocks_to_search(chain_id: int, validity_window_seconds: float) -> int:
    return math.ceil(validity_window_seconds / get_chain_config(chain_id).block_time)


def get_transfer_instructions(
    identity: str,
    connected_wallet: str,
    controller: str,
    purpose: ProofPurpose = ProofPurpose.SHARED_CONTROL,
) -> Optional[TransferInstructions]:
    """Transfer the controller must make to bind `connected_wallet` to `identity`.

    The subject is the identity's DID and the counterparty the connected
    wallet's did:pkh on the same chain. None when the identity is not an
    EVM did:pkh or its chain has no transfer-proof support.
    """
    did = normalize_did(identity)
    chain_id = get_chain_id_from_did_pkh(did) if did else None
    if chain_id is None or not is_chain_supported(chain_id):
        return None

    counterparty = build_pkh_did(chain_id, connected_wallet)
    amount = calculate_transfer_amount(did, counterparty, chain_id, purpose)
    display = format_transfer_amount(amount, chain_id)
    return TransferInstructions(
        chain_id=chain_id,
        amount_wei=amount,
        formatted=display["formatted"],
        symbol=display["symbol"],
        recipient=connected_wallet.lower(),
        sender=controller.lower(),
        purpose=ProofPurpose(purpose),
    )
