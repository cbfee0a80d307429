"""
Registry Verifier configuration constants.

Constants are organized into:
- NORMATIVE: Fixed by the registry contract and proof formats
- CONFIGURABLE: Defaults that a deployment may override
- POLICY: Implementation choices for bounds and retries
- OPERATIONAL: Deployment-specific settings (env vars)
"""

import os

# =============================================================================
# NORMATIVE CONSTANTS (fixed by the on-chain registry)
# =============================================================================

# dataHashAlgorithm selector values stored on-chain next to dataHash
HASH_ALGORITHM_KECCAK256: int = 0
HASH_ALGORITHM_SHA256: int = 1

# Selector used for every new mint/update
DEFAULT_HASH_ALGORITHM: int = HASH_ALGORITHM_KECCAK256

# Attestation schemas that prove control of a registered resource
REQUIRED_OWNERSHIP_SCHEMAS: tuple[str, ...] = ("oma3.ownership.v1",)

# Only EVM accounts support controller discovery
SUPPORTED_OWNERSHIP_NAMESPACES: frozenset[str] = frozenset({"eip155"})

# =============================================================================
# CONFIGURABLE DEFAULTS
# =============================================================================

# dataUrl fetch deadline (whole request, including body stream)
DATA_URL_FETCH_TIMEOUT_MS: int = int(os.getenv("REGISTRY_DATA_URL_TIMEOUT_MS", "15000"))

# dataUrl body cap; the stream is aborted once exceeded
DATA_URL_MAX_BYTES: int = int(os.getenv("REGISTRY_DATA_URL_MAX_BYTES", "2000000"))

DATA_URL_MAX_REDIRECTS: int = int(os.getenv("REGISTRY_DATA_URL_MAX_REDIRECTS", "3"))

# =============================================================================
# POLICY CONSTANTS (retries and timeouts)
# =============================================================================

# Metadata submission: exactly one retry on a network error
SUBMIT_RETRY_DELAY_SECONDS: float = 0.3

# JSON-RPC calls used for controller discovery
RPC_MAX_ATTEMPTS: int = 2
RPC_BACKOFF_SECONDS: float = 0.5
RPC_TIMEOUT_SECONDS: float = float(os.getenv("REGISTRY_RPC_TIMEOUT", "10.0"))

# verify-and-attest round trip
ATTESTATION_TIMEOUT_SECONDS: float = float(os.getenv("REGISTRY_ATTESTATION_TIMEOUT", "30.0"))

# =============================================================================
# OPERATIONAL SETTINGS (deployment-specific, via environment variables)
# =============================================================================

# Admin endpoint visibility
# Default: True for dev, set to False in production deployments
ADMIN_ENDPOINT_ENABLED: bool = os.getenv("ADMIN_ENDPOINT_ENABLED", "true").lower() == "true"

# Verification and attestation service (POST {did, connectedAddress, ...})
ATTESTATION_SERVICE_URL: str = os.getenv(
    "REGISTRY_ATTESTATION_URL", "http://localhost:3000/api/verify-and-attest"
)

# Thirdweb RPC edge client id, used when no explicit RPC URL is configured
THIRDWEB_CLIENT_ID: str = os.getenv("THIRDWEB_CLIENT_ID", "")

# Local development chains served by a node on localhost:8545
LOCAL_CHAIN_IDS: frozenset[int] = frozenset({1337, 31337})
LOCAL_RPC_URL: str = os.getenv("REGISTRY_LOCAL_RPC_URL", "http://localhost:8545")


def _parse_rpc_urls() -> dict[int, str]:
    """Parse per-chain RPC URL overrides from environment.

    Environment variable format:
        REGISTRY_RPC_URLS=66238=https://rpc.testnet.chain.oma3.org,1=https://eth.example

    Returns:
        dict mapping chain id to RPC URL. Malformed entries are skipped.
    """
    env_value = os.getenv("REGISTRY_RPC_URLS", "")
    urls: dict[int, str] = {}
    for entry in env_value.split(","):
        chain, sep, url = entry.partition("=")
        if not sep or not chain.strip().isdigit() or not url.strip():
            continue
        urls[int(chain.strip())] = url.strip()
    return urls


RPC_URL_OVERRIDES: dict[int, str] = _parse_rpc_urls()

# Registry contract used for registration linkage in metadata
# Empty address disables registration synthesis
REGISTRY_CHAIN_ID: int = int(os.getenv("REGISTRY_CHAIN_ID", "66238"))
REGISTRY_CONTRACT_ADDRESS: str = os.getenv("REGISTRY_CONTRACT_ADDRESS", "")

# Base URL of our own metadata hosting (dataUrl under it gets metadataJson on-chain)
APP_BASE_URL: str = os.getenv("REGISTRY_APP_BASE_URL", "http://localhost:3000")

# Hosts considered our own metadata infrastructure
HOSTED_METADATA_DOMAINS: tuple[str, ...] = (
    "omatrust.org",
    "oma3.org",
    "localhost",
    "vercel.app",
)
