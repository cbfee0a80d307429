"""Registry contract boundary: typed records and call payload mapping.

The registry contract itself is reached through a RegistryAdapter supplied
by the caller. Its rules, as seen from here:
- `did` and `interfaces` are fixed at mint time
- `versionHistory` is append-only
- `status`, `dataUrl` and `dataHash` may change with each update

The integrity rule binding both halves: the canonical hash of the document
published at `dataUrl` must equal the on-chain `dataHash`, interpreted with
the on-chain `dataHashAlgorithm` selector (see verify_record_integrity).
"""

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlparse

import httpx

from app.core.config import APP_BASE_URL, DEFAULT_HASH_ALGORITHM, HOSTED_METADATA_DOMAINS
from app.registry.canonical import (
    DataUrlVerification,
    hash_document,
    keccak256_hex,
    verify_data_url_hash,
)
from app.registry.identity import normalize_did
from app.registry.metadata import RegistrationContext, build_offchain_metadata

log = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


# =============================================================================
# Status
# =============================================================================

class AppStatus(IntEnum):
    ACTIVE = 0
    DEPRECATED = 1
    REPLACED = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


def status_to_label(value: int) -> str:
    """Contract status number to label; unknown values read as Active."""
    try:
        return AppStatus(value).label
    except ValueError:
        log.warning(f"Unknown status number: {value}, defaulting to Active")
        return AppStatus.ACTIVE.label


def label_to_status(label: str) -> Optional[AppStatus]:
    for status in AppStatus:
        if status.label == label:
            return status
    return None


# =============================================================================
# Versions
# =============================================================================

@dataclass(frozen=True, order=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_version(value: str) -> Optional[Version]:
    """Strict `X.Y.Z` parse; None otherwise."""
    if not isinstance(value, str):
        return None
    match = _VERSION_RE.fullmatch(value.strip())
    if not match:
        return None
    return Version(*(int(part) for part in match.groups()))


def format_version(version: Version) -> str:
    return str(version)


def compare_versions(a: Version, b: Version) -> int:
    if a == b:
        return 0
    return -1 if a < b else 1


def current_version(history: List[Version]) -> Version:
    return history[-1] if history else Version(0, 0, 0)


def _split_version(value: str) -> Tuple[int, int, int]:
    """Lenient form-input parse: "1" -> 1.0.0, "1.2" -> 1.2.0."""
    parts = [p for p in str(value).strip().split(".") if p != ""]
    try:
        numbers = [int(p) for p in parts[:3]]
    except ValueError:
        raise ValueError(f"Invalid version: {value!r}")
    defaults = [1, 0, 0]
    numbers += defaults[len(numbers):]
    return numbers[0], numbers[1], numbers[2]


# =============================================================================
# Interfaces
# =============================================================================

INTERFACE_HUMAN = 1
INTERFACE_API = 2
INTERFACE_SMART_CONTRACT = 4


@dataclass(frozen=True)
class InterfaceFlags:
    human: bool = True
    api: bool = False
    smart_contract: bool = False


def interfaces_to_bitmap(flags: InterfaceFlags) -> int:
    return (
        (INTERFACE_HUMAN if flags.human else 0)
        + (INTERFACE_API if flags.api else 0)
        + (INTERFACE_SMART_CONTRACT if flags.smart_contract else 0)
    )


def bitmap_to_interfaces(bitmap: int) -> InterfaceFlags:
    return InterfaceFlags(
        human=bool(bitmap & INTERFACE_HUMAN),
        api=bool(bitmap & INTERFACE_API),
        smart_contract=bool(bitmap & INTERFACE_SMART_CONTRACT),
    )


def _flags_from_input(value: Any) -> InterfaceFlags:
    if isinstance(value, InterfaceFlags):
        return value
    if not isinstance(value, Mapping):
        return InterfaceFlags(human=False)
    return InterfaceFlags(
        human=bool(value.get("human")),
        api=bool(value.get("api")),
        smart_contract=bool(value.get("smartContract")),
    )


# =============================================================================
# Traits
# =============================================================================

def hash_trait(trait: str) -> str:
    return keccak256_hex(trait)


def hash_traits(traits: List[str]) -> List[str]:
    return [hash_trait(t) for t in traits]


# =============================================================================
# Records and call payloads
# =============================================================================

@dataclass
class AppRecord:
    """App record as read from the registry."""
    did: str
    interfaces: int
    data_url: str
    data_hash: str
    data_hash_algorithm: int = DEFAULT_HASH_ALGORITHM
    status: AppStatus = AppStatus.ACTIVE
    minter: str = ""
    version_history: List[Version] = field(default_factory=list)
    trait_hashes: List[str] = field(default_factory=list)
    metadata_json: str = ""
    fungible_token_id: str = ""
    contract_id: str = ""

    @property
    def current_version(self) -> Version:
        return current_version(self.version_history)


@dataclass(frozen=True)
class MintAppInput:
    did: str
    interfaces: int
    data_url: str
    data_hash: str
    data_hash_algorithm: int
    fungible_token_id: str
    contract_id: str
    initial_version_major: int
    initial_version_minor: int
    initial_version_patch: int
    trait_hashes: List[str]
    metadata_json: str


@dataclass(frozen=True)
class UpdateAppInput:
    did: str
    major: int
    new_data_url: str
    new_data_hash: str
    new_data_hash_algorithm: int
    new_interfaces: int
    new_trait_hashes: List[str]
    new_minor: int
    new_patch: int
    metadata_json: str


class RegistryAdapter(Protocol):
    """Read/write access to the registry contract (transaction hash returned on writes)."""

    async def get_app(self, did: str, major: int) -> Optional[AppRecord]: ...

    async def mint(self, app: MintAppInput) -> str: ...

    async def update(self, app: UpdateAppInput) -> str: ...


def is_hosted_data_url(data_url: Optional[str]) -> bool:
    """True when the dataUrl is served by our own metadata hosting.

    Only then is the canonical JSON also stored on-chain as metadataJson.
    """
    if not data_url:
        return False
    if APP_BASE_URL and data_url.startswith(APP_BASE_URL):
        return True
    host = (urlparse(data_url).hostname or "").lower()
    return any(host == d or host.endswith("." + d) for d in HOSTED_METADATA_DOMAINS)


def _payload_common(app: Mapping[str, Any], registration: Optional[RegistrationContext]):
    did = normalize_did(app.get("did", ""))
    if did is None:
        raise ValueError(f"Invalid DID: {app.get('did')!r}")

    document = build_offchain_metadata(app, registration=registration)
    hashed = hash_document(document, DEFAULT_HASH_ALGORITHM)

    traits = app.get("traits")
    trait_hashes = hash_traits(traits) if isinstance(traits, list) else []
    interfaces = interfaces_to_bitmap(_flags_from_input(app.get("interfaceFlags")))
    data_url = app.get("dataUrl") or ""
    metadata_json = hashed.canonical if is_hosted_data_url(data_url) else ""
    return did, hashed, trait_hashes, interfaces, data_url, metadata_json


def to_mint_app_input(
    app: Mapping[str, Any],
    registration: Optional[RegistrationContext] = None,
) -> MintAppInput:
    """Map flattened app form data to the mint call payload.

    Raises:
        ValueError: Invalid DID or version string.
    """
    did, hashed, trait_hashes, interfaces, data_url, metadata_json = _payload_common(app, registration)
    major, minor, patch = _split_version(app.get("version") or "1.0.0")
    return MintAppInput(
        did=did,
        interfaces=interfaces,
        data_url=data_url,
        data_hash=hashed.hash,
        data_hash_algorithm=hashed.algorithm,
        fungible_token_id=app.get("fungibleTokenId") or "",
        contract_id=app.get("contractId") or "",
        initial_version_major=major,
        initial_version_minor=minor,
        initial_version_patch=patch,
        trait_hashes=trait_hashes,
        metadata_json=metadata_json,
    )


def to_update_app_input(
    app: Mapping[str, Any],
    current: str,
    registration: Optional[RegistrationContext] = None,
) -> UpdateAppInput:
    """Map flattened app form data to the update call payload.

    The update targets the current major line; minor/patch come from the
    new version, which must not go backwards.

    Raises:
        ValueError: Invalid DID or version, or a version lower than `current`.
    """
    did, hashed, trait_hashes, interfaces, data_url, metadata_json = _payload_common(app, registration)
    current_major, current_minor, current_patch = _split_version(current)
    _, new_minor, new_patch = _split_version(app.get("version") or current)

    if Version(current_major, new_minor, new_patch) < Version(current_major, current_minor, current_patch):
        raise ValueError(
            f"Version history is append-only: {current_major}.{new_minor}.{new_patch} "
            f"is lower than current {current}"
        )

    return UpdateAppInput(
        did=did,
        major=current_major,
        new_data_url=data_url,
        new_data_hash=hashed.hash,
        new_data_hash_algorithm=hashed.algorithm,
        new_interfaces=interfaces,
        new_trait_hashes=trait_hashes,
        new_minor=new_minor,
        new_patch=new_patch,
        metadata_json=metadata_json,
    )


async def verify_record_integrity(
    record: AppRecord,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> DataUrlVerification:
    """Check the document at record.data_url against the on-chain dataHash."""
    result = await verify_data_url_hash(
        record.data_url,
        record.data_hash,
        record.data_hash_algorithm,
        client=client,
    )
    if not result.ok:
        log.warning(
            f"registry integrity check failed did={record.did} "
            f"version={record.current_version} onchain={record.data_hash} "
            f"computed={result.computed_hash}"
        )
    return result
