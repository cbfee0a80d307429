"""Tests for the canonical off-chain metadata builder and its schema.

Coverage target: app/registry/metadata/
"""

import logging

import pytest

from app.registry.canonical import hash_document
from app.registry.metadata import (
    FIELD_RESOLUTION,
    RegistrationContext,
    build_offchain_metadata,
    clean_platforms,
    deep_clean,
    link_registration,
    validate_offchain_metadata,
)

REGISTRY = "0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb"


@pytest.fixture
def registration():
    return RegistrationContext(chain_id=66238, registry_address=REGISTRY, agent_id=7)


# =============================================================================
# Cleaning
# =============================================================================


class TestDeepClean:
    """Empty-value removal."""

    def test_blank_fields_removed(self):
        assert build_offchain_metadata({"name": "A", "external_url": "", "summary": "   "}) == {"name": "A"}

    def test_nested_empties_collapse(self):
        assert deep_clean({"a": {"b": {"c": ""}}, "d": [], "e": None}) is None

    def test_zero_and_false_are_content(self):
        assert deep_clean({"a": 0, "b": False, "c": []}) == {"a": 0, "b": False}

    def test_blank_strings_kept_in_arrays(self):
        assert deep_clean({"urls": ["", "https://a", "  "]}) == {"urls": ["", "https://a", "  "]}

    def test_none_dropped_from_arrays(self):
        assert deep_clean({"urls": [None, "https://a"], "more": [None]}) == {"urls": ["https://a"]}

    def test_blank_list_entries_survive_build(self):
        built = build_offchain_metadata({"name": "A", "screenshotUrls": ["", "https://x/a.png"]})
        assert built["screenshotUrls"] == ["", "https://x/a.png"]

    def test_strings_not_trimmed(self):
        assert deep_clean({"a": " x "}) == {"a": " x "}

    def test_empty_input(self):
        assert build_offchain_metadata({}) == {}


# =============================================================================
# Source resolution
# =============================================================================


class TestFieldResolution:
    """extra > flattened > legacy metadata, first containing source wins."""

    def test_legacy_and_flattened_hash_identically(self):
        legacy = build_offchain_metadata({"name": "A", "metadata": {"descriptionUrl": "https://a/desc"}})
        flat = build_offchain_metadata({"name": "A", "descriptionUrl": "https://a/desc"})
        assert legacy == flat
        assert hash_document(legacy) == hash_document(flat)

    def test_extra_overrides_flattened(self):
        doc = build_offchain_metadata({"description": "flat", "extra": {"description": "override"}})
        assert doc["description"] == "override"

    def test_flattened_overrides_legacy(self):
        doc = build_offchain_metadata({"image": "https://new", "metadata": {"image": "https://old"}})
        assert doc["image"] == "https://new"

    def test_present_null_masks_lower_sources(self):
        doc = build_offchain_metadata({"extra": {"description": None}, "description": "flat"})
        assert "description" not in doc

    def test_name_only_from_flattened(self):
        doc = build_offchain_metadata({"extra": {"name": "X"}, "metadata": {"name": "Y"}})
        assert "name" not in doc

    def test_three_d_alias(self):
        doc = build_offchain_metadata({"threeDAssetUrls": ["https://a/model.glb"]})
        assert doc == {"3dAssetUrls": ["https://a/model.glb"]}

    def test_non_list_is_dropped(self):
        # The flattened value wins the lookup, so the legacy list is not consulted
        doc = build_offchain_metadata({"name": "A", "traits": "gaming", "metadata": {"traits": ["social"]}})
        assert doc == {"name": "A"}

    def test_every_rule_has_unique_key(self):
        keys = [rule.key for rule in FIELD_RESOLUTION]
        assert len(keys) == len(set(keys))

    def test_non_mapping_input(self):
        assert build_offchain_metadata(None) == {}


# =============================================================================
# Platforms
# =============================================================================


class TestPlatforms:
    """Artifact classification never leaks into platforms."""

    def test_artifact_fields_stripped(self):
        cleaned = clean_platforms({
            "windows": {"downloadUrl": "https://a/app.exe", "artifactType": "binary", "os": "windows"},
            "web": {"launchUrl": "https://a", "architecture": "x64"},
        })
        assert cleaned == {
            "windows": {"downloadUrl": "https://a/app.exe"},
            "web": {"launchUrl": "https://a"},
        }

    def test_non_mapping_entry(self):
        assert clean_platforms({"ios": "nope"}) == {"ios": {}}
        assert clean_platforms(None) == {}

    def test_empty_platform_dropped_from_document(self):
        doc = build_offchain_metadata({"name": "A", "platforms": {"ios": {"artifactOs": "ios"}}})
        assert doc == {"name": "A"}


# =============================================================================
# Endpoint synthesis
# =============================================================================


class TestEndpointSynthesis:
    """The single endpoints entry."""

    def test_endpoint_from_flat_fields(self):
        doc = build_offchain_metadata({"endpointUrl": "https://api.example.com", "apiType": "openapi"})
        assert doc["endpoints"] == [{"name": "OpenAPI", "endpoint": "https://api.example.com"}]

    def test_endpoint_object_with_schema(self):
        doc = build_offchain_metadata({
            "endpoint": {"url": "https://api", "name": "REST", "schemaUrl": "https://api/schema"},
        })
        assert doc["endpoints"] == [{"name": "REST", "endpoint": "https://api", "schemaUrl": "https://api/schema"}]

    def test_mcp_fields_folded_into_endpoint(self):
        doc = build_offchain_metadata({
            "endpoint": {"url": "https://mcp.example.com", "name": "MCP"},
            "mcp": {"tools": [{"name": "search"}], "transport": "http"},
        })
        assert "mcp" not in doc
        assert doc["endpoints"] == [{
            "name": "MCP",
            "endpoint": "https://mcp.example.com",
            "tools": [{"name": "search"}],
            "transport": "http",
        }]

    def test_mcp_kept_for_other_endpoints(self):
        doc = build_offchain_metadata({
            "endpointUrl": "https://api",
            "endpointName": "OpenAPI",
            "mcp": {"transport": "http"},
        })
        assert doc["mcp"] == {"transport": "http"}

    def test_existing_endpoints_without_url(self):
        endpoints = [{"name": "A2A", "endpoint": "https://a2a"}]
        doc = build_offchain_metadata({"endpoints": endpoints})
        assert doc["endpoints"] == endpoints


# =============================================================================
# Registration linkage
# =============================================================================


class TestRegistrationLinkage:
    """registrations entry for the document's own DID."""

    def test_appends_entry(self, registration):
        doc = build_offchain_metadata({"did": "did:web:Example.com", "name": "A"}, registration=registration)
        assert doc["registrations"] == [{
            "did": "did:web:example.com",
            "agentRegistry": f"eip155:66238:{REGISTRY.lower()}",
            "agentId": 7,
        }]

    def test_updates_existing_entry(self, registration):
        existing = [{"did": "did:web:example.com", "agentRegistry": "eip155:1:0xabc", "agentId": 7}]
        result = link_registration(existing, "did:web:EXAMPLE.com", registration)
        assert result == existing

    def test_agent_id_conflict_logged(self, registration, caplog):
        existing = [{"did": "did:web:example.com", "agentRegistry": "eip155:1:0xabc", "agentId": 3}]
        with caplog.at_level(logging.WARNING):
            result = link_registration(existing, "did:web:example.com", registration)
        assert result[0]["agentId"] == 7
        assert "agentId conflict" in caplog.text

    def test_without_context_passes_through(self):
        existing = [{"did": "did:web:a.com", "agentRegistry": "eip155:1:0xabc"}]
        assert link_registration(existing, "did:web:b.com", None) == existing

    def test_without_did_passes_through(self, registration):
        assert link_registration([], None, registration) == []

    def test_registry_lowercased(self):
        context = RegistrationContext(1, REGISTRY)
        assert context.agent_registry == f"eip155:1:{REGISTRY.lower()}"


# =============================================================================
# Schema
# =============================================================================


class TestMetadataSchema:
    """Advisory JSON Schema validation."""

    VALID = {
        "name": "My App",
        "description": "An application that does things",
        "publisher": "Example Inc",
        "image": "https://example.com/icon.png",
    }

    def test_valid_document(self):
        assert validate_offchain_metadata(self.VALID) == []

    def test_missing_required(self):
        errors = validate_offchain_metadata({"name": "My App"})
        assert any("'description' is a required property" in e for e in errors)
        assert all(e.startswith("(root)") for e in errors)

    def test_too_many_traits(self):
        doc = dict(self.VALID, traits=[f"t{i}" for i in range(21)])
        errors = validate_offchain_metadata(doc)
        assert len(errors) == 1
        assert errors[0].startswith("traits:")

    def test_nested_path(self):
        doc = dict(self.VALID, endpoints=[{"name": "x"}])
        errors = validate_offchain_metadata(doc)
        assert errors == ["endpoints.0: 'endpoint' is a required property"]

    def test_error_cap(self):
        doc = {f"k{i}": i for i in range(3)}
        doc["name"] = 1
        errors = validate_offchain_metadata(doc, max_errors=2)
        assert len(errors) == 3
        assert errors[-1].startswith("... and more errors")
