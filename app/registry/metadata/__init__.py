"""Canonical off-chain metadata: building, cleaning and validation."""

from .builder import (
    FIELD_RESOLUTION,
    FieldKind,
    FieldRule,
    RegistrationContext,
    Source,
    build_offchain_metadata,
    clean_platforms,
    deep_clean,
    link_registration,
    synthesize_endpoint,
)
from .schema import OFFCHAIN_METADATA_SCHEMA, validate_offchain_metadata

__all__ = [
    "FIELD_RESOLUTION",
    "FieldKind",
    "FieldRule",
    "RegistrationContext",
    "Source",
    "build_offchain_metadata",
    "clean_platforms",
    "deep_clean",
    "link_registration",
    "synthesize_endpoint",
    "OFFCHAIN_METADATA_SCHEMA",
    "validate_offchain_metadata",
]
