"""Classify raw tunnel config text into one of the accepted input dialects."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

import yaml

from tunnel_config.errors import ErrorCode, PlatformError

logger = logging.getLogger(__name__)

LEGACY_URL_PREFIX = "ss://"
STRUCTURED_KEYS = ("transport", "error")


class Dialect(str, Enum):
    LEGACY_URL = "legacy_url"
    LEGACY_FLAT = "legacy_flat"
    STRUCTURED = "structured"


def safe_load(text: str) -> Any:
    """Parse YAML, retrying as strict JSON when YAML rejects the text.

    Tab-indented JSON is valid JSON but not valid YAML.
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        try:
            return json.loads(text)
        except ValueError:
            raise exc from None


def load_document(text: str) -> dict[Any, Any]:
    """Parse YAML (a superset of the flat JSON form) into a top-level mapping.

    Empty input yields an empty mapping. Anything that is not a mapping at the
    top level is rejected the same way a syntax error is.
    """
    try:
        document = safe_load(text)
    except (yaml.YAMLError, RecursionError) as exc:
        raise PlatformError(ErrorCode.INVALID_CONFIG, f"failed to parse: {exc}") from exc

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise PlatformError(
            ErrorCode.INVALID_CONFIG,
            f"failed to parse: expected a mapping at the top level, got {type(document).__name__}",
        )
    return document


def detect_dialect(text: str) -> Dialect:
    """Return the dialect of already-trimmed config text.

    The probe parse only checks key presence; its result is discarded.
    """
    if text.startswith(LEGACY_URL_PREFIX):
        dialect = Dialect.LEGACY_URL
    else:
        document = load_document(text)
        if any(key in document for key in STRUCTURED_KEYS):
            dialect = Dialect.STRUCTURED
        else:
            dialect = Dialect.LEGACY_FLAT

    logger.debug("Detected tunnel config dialect: %s", dialect.value)
    return dialect
