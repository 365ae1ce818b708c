"""Structured lifecycle logging shared by the updaters."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from updatestream.core.update_context import get_update_id


def _normalize_field_value(value: Any) -> Any:
    """Reduce a field value to something json.dumps accepts."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(k): _normalize_field_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_field_value(item) for item in value]
    return str(value)


def log_event(
    logger: logging.Logger,
    *,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit one `event=<name> fields=<json>` record."""
    if not logger.isEnabledFor(level):
        return
    normalized_fields = {
        key: _normalize_field_value(value) for key, value in sorted(fields.items())
    }
    update_id = get_update_id()
    if update_id is not None and "update_id" not in normalized_fields:
        normalized_fields["update_id"] = update_id
    logger.log(
        level,
        "event=%s fields=%s",
        event,
        json.dumps(normalized_fields, sort_keys=True, separators=(",", ":")),
    )
