"""Tests for the registry contract boundary.

Coverage target: app/registry/contract.py
"""

import pytest

from app.registry.canonical import canonicalize, hash_document, keccak256_hex
from app.registry.contract import (
    AppRecord,
    AppStatus,
    InterfaceFlags,
    Version,
    bitmap_to_interfaces,
    compare_versions,
    current_version,
    format_version,
    hash_traits,
    interfaces_to_bitmap,
    is_hosted_data_url,
    label_to_status,
    parse_version,
    status_to_label,
    to_mint_app_input,
    to_update_app_input,
    verify_record_integrity,
)
from app.registry.metadata import build_offchain_metadata

from conftest import json_response, mock_client


def app_form(**overrides):
    form = {
        "did": "did:web:Example.com",
        "name": "Example",
        "description": "An example application",
        "publisher": "Example Inc",
        "image": "https://example.com/icon.png",
        "dataUrl": "https://example.com/metadata.json",
        "version": "1.0.0",
        "traits": ["gaming", "social"],
        "interfaceFlags": {"human": True, "api": True},
    }
    form.update(overrides)
    return form


# =============================================================================
# Status and versions
# =============================================================================


class TestStatus:
    """Status number/label mapping."""

    def test_labels(self):
        assert status_to_label(0) == "Active"
        assert status_to_label(1) == "Deprecated"
        assert status_to_label(2) == "Replaced"

    def test_unknown_number_reads_active(self):
        assert status_to_label(9) == "Active"

    def test_label_to_status(self):
        assert label_to_status("Replaced") is AppStatus.REPLACED
        assert label_to_status("Gone") is None


class TestVersions:
    """Version parsing and ordering."""

    def test_parse(self):
        assert parse_version("1.2.3") == Version(1, 2, 3)
        assert parse_version(" 10.0.1 ") == Version(10, 0, 1)

    @pytest.mark.parametrize("value", ["1.2", "1.2.3.4", "v1.2.3", "", None])
    def test_parse_strict(self, value):
        assert parse_version(value) is None

    def test_ordering_is_numeric(self):
        assert compare_versions(Version(1, 10, 0), Version(1, 9, 9)) == 1
        assert compare_versions(Version(1, 0, 0), Version(2, 0, 0)) == -1
        assert compare_versions(Version(1, 0, 0), Version(1, 0, 0)) == 0

    def test_current_is_last_entry(self):
        history = [Version(1, 0, 0), Version(1, 1, 0)]
        assert current_version(history) == Version(1, 1, 0)
        assert current_version([]) == Version(0, 0, 0)
        assert format_version(Version(1, 1, 0)) == "1.1.0"

    def test_record_current_version(self):
        record = AppRecord("did:web:a.com", 1, "https://a", "0x00", version_history=[Version(2, 0, 1)])
        assert record.current_version == Version(2, 0, 1)


# =============================================================================
# Interfaces and traits
# =============================================================================


class TestInterfaces:
    """Interface bitmap."""

    def test_bitmap(self):
        assert interfaces_to_bitmap(InterfaceFlags(human=True, api=True, smart_contract=True)) == 7
        assert interfaces_to_bitmap(InterfaceFlags(human=False, smart_contract=True)) == 4

    def test_bitmap_back_to_flags(self):
        assert bitmap_to_interfaces(3) == InterfaceFlags(human=True, api=True, smart_contract=False)


class TestTraits:
    """Trait hashing."""

    def test_hash_traits(self):
        assert hash_traits(["gaming"]) == [keccak256_hex("gaming")]

    def test_order_kept(self):
        hashes = hash_traits(["b", "a"])
        assert hashes == [keccak256_hex("b"), keccak256_hex("a")]


# =============================================================================
# Payload mapping
# =============================================================================


class TestHostedDataUrl:
    """metadataJson is only stored for our own hosting."""

    @pytest.mark.parametrize("url", [
        "http://localhost:3000/api/data-url/x",
        "https://registry.omatrust.org/api/data-url/x",
        "https://omatrust.org/x.json",
    ])
    def test_hosted(self, url):
        assert is_hosted_data_url(url) is True

    @pytest.mark.parametrize("url", [
        "https://omatrust.org.evil.com/x.json",
        "https://example.com/metadata.json",
        "",
        None,
    ])
    def test_not_hosted(self, url):
        assert is_hosted_data_url(url) is False


class TestMintInput:
    """Form data to mint payload."""

    def test_mint_payload(self):
        payload = to_mint_app_input(app_form())
        expected = hash_document(build_offchain_metadata(app_form()))

        assert payload.did == "did:web:example.com"
        assert payload.data_hash == expected.hash
        assert payload.data_hash_algorithm == 0
        assert payload.interfaces == 3
        assert payload.trait_hashes == hash_traits(["gaming", "social"])
        assert (payload.initial_version_major, payload.initial_version_minor, payload.initial_version_patch) == (1, 0, 0)
        assert payload.metadata_json == ""

    def test_hosted_url_stores_canonical_json(self):
        form = app_form(dataUrl="https://registry.omatrust.org/api/data-url/1")
        payload = to_mint_app_input(form)
        assert payload.metadata_json == canonicalize(build_offchain_metadata(form))

    def test_lenient_version(self):
        payload = to_mint_app_input(app_form(version="2"))
        assert (payload.initial_version_major, payload.initial_version_minor) == (2, 0)

    def test_invalid_did(self):
        with pytest.raises(ValueError):
            to_mint_app_input(app_form(did="nope"))

    def test_invalid_version(self):
        with pytest.raises(ValueError):
            to_mint_app_input(app_form(version="one"))


class TestUpdateInput:
    """Form data to update payload."""

    def test_update_payload(self):
        update = to_update_app_input(app_form(version="1.3.0"), "1.2.3")
        assert update.major == 1
        assert (update.new_minor, update.new_patch) == (3, 0)
        assert update.new_data_hash == hash_document(build_offchain_metadata(app_form())).hash

    def test_major_stays_on_current_line(self):
        update = to_update_app_input(app_form(version="2.0.1"), "1.0.0")
        assert update.major == 1
        assert (update.new_minor, update.new_patch) == (0, 1)

    def test_same_version_allowed(self):
        update = to_update_app_input(app_form(version="1.2.3"), "1.2.3")
        assert (update.new_minor, update.new_patch) == (2, 3)

    def test_regression_rejected(self):
        with pytest.raises(ValueError) as exc:
            to_update_app_input(app_form(version="1.2.0"), "1.2.3")
        assert "append-only" in str(exc.value)


# =============================================================================
# Integrity
# =============================================================================


class TestRecordIntegrity:
    """On-chain dataHash against the published document."""

    DOCUMENT = {"name": "Example", "description": "An example application"}

    def record(self, data_hash):
        return AppRecord(
            did="did:web:example.com",
            interfaces=1,
            data_url="https://example.com/metadata.json",
            data_hash=data_hash,
            version_history=[Version(1, 0, 0)],
        )

    @pytest.mark.asyncio
    async def test_matching_record(self):
        record = self.record(keccak256_hex(canonicalize(self.DOCUMENT)))
        async with mock_client(lambda request: json_response(self.DOCUMENT)) as client:
            result = await verify_record_integrity(record, client=client)
        assert result.ok is True

    @pytest.mark.asyncio
    async def test_tampered_document(self):
        record = self.record(keccak256_hex(canonicalize(self.DOCUMENT)))
        tampered = dict(self.DOCUMENT, name="Exampl3")
        async with mock_client(lambda request: json_response(tampered)) as client:
            result = await verify_record_integrity(record, client=client)
        assert result.ok is False
