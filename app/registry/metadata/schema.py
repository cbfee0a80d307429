"""Off-chain metadata validation against JSON Schema.

Validation is advisory: the builder always produces a document, and this
reports what a registry client would reject before it gets published.
"""

import logging
from typing import Any, Dict, List

import jsonschema
from jsonschema import Draft7Validator

log = logging.getLogger(__name__)

_URL = {"type": "string", "minLength": 1}
_URL_LIST = {"type": "array", "items": _URL}

OFFCHAIN_METADATA_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["name", "description", "publisher", "image"],
    "properties": {
        "name": {"type": "string", "minLength": 2, "maxLength": 80},
        "description": {"type": "string", "minLength": 10},
        "descriptionUrl": _URL,
        "publisher": {"type": "string", "minLength": 1},
        "image": _URL,
        "external_url": _URL,
        "summary": {"type": "string"},
        "owner": {"type": "string"},
        "legalUrl": _URL,
        "supportUrl": _URL,
        "iwpsPortalUrl": _URL,
        "screenshotUrls": _URL_LIST,
        "videoUrls": _URL_LIST,
        "3dAssetUrls": _URL_LIST,
        "traits": {"type": "array", "items": {"type": "string"}, "maxItems": 20},
        "interfaceVersions": {"type": "array", "items": {"type": "string"}},
        "platforms": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "launchUrl": _URL,
                    "downloadUrl": _URL,
                    "supported": {"type": "boolean"},
                    "artifactDid": {"type": "string"},
                },
            },
        },
        "artifacts": {"type": "object"},
        "endpoints": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["endpoint"],
                "properties": {
                    "name": {"type": "string"},
                    "endpoint": _URL,
                    "schemaUrl": _URL,
                },
            },
        },
        "mcp": {"type": "object"},
        "payments": {"type": "array", "items": {"type": "object"}},
        "registrations": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["agentRegistry"],
                "properties": {
                    "did": {"type": "string"},
                    "agentRegistry": {"type": "string"},
                    "agentId": {"type": "integer"},
                },
            },
        },
    },
}


def validate_offchain_metadata(document: Dict[str, Any], max_errors: int = 10) -> List[str]:
    """Validate a built metadata document.

    Args:
        document: Output of build_offchain_metadata.
        max_errors: Maximum validation errors to collect.

    Returns:
        List of "<path>: <message>" strings (empty if valid).
    """
    errors: List[str] = []

    try:
        validator = Draft7Validator(OFFCHAIN_METADATA_SCHEMA)
        for error in sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path]):
            if len(errors) >= max_errors:
                errors.append(f"... and more errors (stopped at {max_errors})")
                break
            path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
            errors.append(f"{path}: {error.message}")
    except jsonschema.SchemaError as e:
        log.error(f"Off-chain metadata schema is invalid: {e.message}")
        errors.append(f"Invalid schema: {e.message}")

    return errors
