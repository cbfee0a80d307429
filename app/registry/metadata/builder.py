"""Canonical off-chain metadata builder.

Input arrives in one of three shapes, often mixed:
- flattened top-level fields (current wizard/API shape)
- legacy nested fields under `metadata`
- explicit overrides under `extra`

Every output key is resolved through FIELD_RESOLUTION, a single ordering
table. For each key the sources are consulted in order and the first
source that *contains* the key wins, even when the value there is null.
This order is what previously published documents were hashed with and
must not change.

The result goes through deep_clean() last, so logically-equal input
collapses to the same document (and therefore the same hash) no matter
which "empty" representation produced it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.core.config import REGISTRY_CHAIN_ID, REGISTRY_CONTRACT_ADDRESS
from app.registry.identity import normalize_did

log = logging.getLogger(__name__)


class Source(str, Enum):
    EXTRA = "extra"
    FLATTENED = "flattened"
    LEGACY = "metadata"


ALL_SOURCES: Tuple[Source, ...] = (Source.EXTRA, Source.FLATTENED, Source.LEGACY)


class FieldKind(str, Enum):
    SCALAR = "scalar"        # falsy values dropped
    LIST = "list"            # non-list falls back to []
    OBJECT = "object"        # non-dict dropped
    PLATFORMS = "platforms"  # dict of platform entries, artifact fields stripped


@dataclass(frozen=True)
class FieldRule:
    key: str
    kind: FieldKind
    aliases: Tuple[str, ...] = ()
    sources: Tuple[Source, ...] = ALL_SOURCES


# =============================================================================
# Ordering table
# =============================================================================

FIELD_RESOLUTION: Tuple[FieldRule, ...] = (
    # Only the flattened shape ever carried `name`
    FieldRule("name", FieldKind.SCALAR, sources=(Source.FLATTENED,)),
    FieldRule("external_url", FieldKind.SCALAR),
    FieldRule("image", FieldKind.SCALAR),
    FieldRule("description", FieldKind.SCALAR),
    FieldRule("descriptionUrl", FieldKind.SCALAR),
    FieldRule("publisher", FieldKind.SCALAR),
    FieldRule("summary", FieldKind.SCALAR),
    FieldRule("owner", FieldKind.SCALAR),
    FieldRule("legalUrl", FieldKind.SCALAR),
    FieldRule("supportUrl", FieldKind.SCALAR),
    FieldRule("iwpsPortalUrl", FieldKind.SCALAR),
    FieldRule("a2a", FieldKind.SCALAR),
    FieldRule("screenshotUrls", FieldKind.LIST),
    FieldRule("videoUrls", FieldKind.LIST),
    FieldRule("3dAssetUrls", FieldKind.LIST, aliases=("threeDAssetUrls",)),
    FieldRule("traits", FieldKind.LIST),
    FieldRule("interfaceVersions", FieldKind.LIST),
    FieldRule("payments", FieldKind.LIST),
    FieldRule("endpoints", FieldKind.LIST),
    FieldRule("registrations", FieldKind.LIST),
    FieldRule("platforms", FieldKind.PLATFORMS),
    FieldRule("artifacts", FieldKind.OBJECT),
    FieldRule("mcp", FieldKind.OBJECT),
)

# Artifact classification belongs in `artifacts`, never under `platforms`
ARTIFACT_ONLY_PLATFORM_FIELDS = frozenset({
    "artifactType",
    "artifactOs",
    "artifactArchitecture",
    "type",
    "os",
    "architecture",
})

API_TYPE_ENDPOINT_NAMES: Dict[str, str] = {
    "openapi": "OpenAPI",
    "graphql": "GraphQL",
    "jsonrpc": "JSON-RPC",
    "mcp": "MCP",
    "a2a": "A2A",
}

MCP_ENDPOINT_NAME = "MCP"


@dataclass(frozen=True)
class RegistrationContext:
    """Registry the document is being registered against."""
    chain_id: int
    registry_address: str
    agent_id: Optional[int] = None

    @property
    def agent_registry(self) -> str:
        return f"eip155:{self.chain_id}:{self.registry_address.lower()}"

    @classmethod
    def from_config(cls, agent_id: Optional[int] = None) -> Optional["RegistrationContext"]:
        """Context for the configured registry; None when no address is configured."""
        if not REGISTRY_CONTRACT_ADDRESS:
            return None
        return cls(REGISTRY_CHAIN_ID, REGISTRY_CONTRACT_ADDRESS, agent_id)


# =============================================================================
# Lookup
# =============================================================================

def _sources(data: Mapping[str, Any]) -> Dict[Source, Mapping[str, Any]]:
    def as_mapping(value: Any) -> Mapping[str, Any]:
        return value if isinstance(value, Mapping) else {}

    return {
        Source.EXTRA: as_mapping(data.get("extra")),
        Source.FLATTENED: data,
        Source.LEGACY: as_mapping(data.get("metadata")),
    }


def pick(
    sources: Mapping[Source, Mapping[str, Any]],
    key: str,
    order: Tuple[Source, ...] = ALL_SOURCES,
) -> Any:
    """Value of `key` from the first source containing it (None if none do)."""
    for source in order:
        mapping = sources[source]
        if key in mapping:
            return mapping[key]
    return None


def _resolve(sources: Mapping[Source, Mapping[str, Any]], rule: FieldRule) -> Any:
    if rule.kind == FieldKind.LIST:
        for key in (rule.key,) + rule.aliases:
            value = pick(sources, key, rule.sources)
            if isinstance(value, list):
                return value
        return []

    value = pick(sources, rule.key, rule.sources)
    if rule.kind == FieldKind.SCALAR:
        return value or None
    if rule.kind == FieldKind.PLATFORMS:
        return clean_platforms(value)
    return value if isinstance(value, dict) else None


def clean_platforms(platforms: Any) -> Dict[str, Any]:
    """Strip artifact classification fields from every platform entry."""
    if not isinstance(platforms, Mapping):
        return {}
    cleaned: Dict[str, Any] = {}
    for platform, details in platforms.items():
        if not isinstance(details, Mapping):
            cleaned[platform] = {}
            continue
        cleaned[platform] = {
            k: v for k, v in details.items() if k not in ARTIFACT_ONLY_PLATFORM_FIELDS
        }
    return cleaned


# =============================================================================
# Synthesis
# =============================================================================

def _non_blank(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def synthesize_endpoint(
    sources: Mapping[Source, Mapping[str, Any]],
    mcp: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Build the single `endpoints` entry, or None when no endpoint URL is given."""
    endpoint = pick(sources, "endpoint")
    endpoint = endpoint if isinstance(endpoint, Mapping) else {}

    url = (
        _non_blank(endpoint.get("url"))
        or _non_blank(endpoint.get("endpoint"))
        or _non_blank(pick(sources, "endpointUrl"))
    )
    if url is None:
        return None

    api_type = pick(sources, "apiType")
    name = (
        _non_blank(endpoint.get("name"))
        or _non_blank(pick(sources, "endpointName"))
        or API_TYPE_ENDPOINT_NAMES.get(api_type if isinstance(api_type, str) else "")
    )
    schema_url = _non_blank(endpoint.get("schemaUrl")) or _non_blank(pick(sources, "endpointSchemaUrl"))

    entry: Dict[str, Any] = {"name": name, "endpoint": url, "schemaUrl": schema_url}
    if name == MCP_ENDPOINT_NAME and mcp:
        # MCP fields live flat on the endpoint entry
        for key, value in mcp.items():
            entry.setdefault(key, value)
    return entry


def link_registration(
    registrations: List[Any],
    did: Optional[str],
    context: Optional[RegistrationContext],
) -> List[Any]:
    """Update or append the registration entry for `did`.

    An existing entry for the same DID only gets its agentId refreshed. A
    different prior agentId is logged, not rejected.
    """
    if not did or context is None:
        return registrations

    target = normalize_did(did) or did
    updated: List[Any] = []
    found = False
    for entry in registrations:
        if not found and isinstance(entry, Mapping) and _same_did(entry.get("did"), target):
            found = True
            entry = dict(entry)
            if context.agent_id is not None:
                prior = entry.get("agentId")
                if prior is not None and prior != context.agent_id:
                    log.warning(
                        f"registration agentId conflict did={target} "
                        f"prior={prior} current={context.agent_id}"
                    )
                entry["agentId"] = context.agent_id
        updated.append(entry)

    if not found:
        new_entry: Dict[str, Any] = {"did": target, "agentRegistry": context.agent_registry}
        if context.agent_id is not None:
            new_entry["agentId"] = context.agent_id
        updated.append(new_entry)
    return updated


def _same_did(candidate: Any, target: str) -> bool:
    if not isinstance(candidate, str):
        return False
    return (normalize_did(candidate) or candidate) == target


# =============================================================================
# Cleaning
# =============================================================================

def deep_clean(value: Any) -> Any:
    """Recursively drop None, blank string values, empty lists and empty dicts.

    Returns None when nothing of substance remains. Blank strings are only
    dropped as mapping values; list items keep them, so previously published
    documents hash the same. Numbers and booleans (including 0 and False) are
    content and are kept.
    """
    if value is None:
        return None
    if isinstance(value, list):
        cleaned_list = [c for c in (deep_clean(v) for v in value) if c is not None]
        return cleaned_list or None
    if isinstance(value, Mapping):
        cleaned_map = {}
        for k, v in value.items():
            if isinstance(v, str) and not v.strip():
                continue
            c = deep_clean(v)
            if c is not None:
                cleaned_map[k] = c
        return cleaned_map or None
    return value


# =============================================================================
# Entry point
# =============================================================================

def build_offchain_metadata(
    data: Mapping[str, Any],
    *,
    registration: Optional[RegistrationContext] = None,
) -> Dict[str, Any]:
    """Build the canonical off-chain metadata document.

    Args:
        data: Builder input in any supported shape. A top-level `did`
            enables registration linkage.
        registration: Registry to link the DID against. Without it,
            existing registrations pass through unchanged.

    Returns:
        The cleaned document. Empty input yields {}.
    """
    sources = _sources(data if isinstance(data, Mapping) else {})

    out: Dict[str, Any] = {rule.key: _resolve(sources, rule) for rule in FIELD_RESOLUTION}

    entry = synthesize_endpoint(sources, out.get("mcp"))
    if entry is not None:
        out["endpoints"] = [entry]
        if entry.get("name") == MCP_ENDPOINT_NAME:
            out.pop("mcp", None)

    did = pick(sources, "did")
    out["registrations"] = link_registration(
        out["registrations"], did if isinstance(did, str) else None, registration
    )

    return deep_clean(out) or {}
