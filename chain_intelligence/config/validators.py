"""
Configuration Validators

Validates lane-set documents and raw provider payloads before they reach
the engine, so malformed input is reported early with readable messages.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

import jsonschema
import yaml

from ..core.error_handling import InvalidMetricError, MissingMetricError, NoLanesConfiguredError
from ..core.types import LaneId, MetricsSnapshot, lane_id

logger = logging.getLogger(__name__)

# JSON Schema for the lane-set document
LANE_SET_SCHEMA = {
    "type": "object",
    "required": ["lanes"],
    "properties": {
        "lanes": {
            "type": "array",
            "minItems": 1,
            "uniqueItems": True,
            "items": {"type": ["string", "integer"]}
        }
    }
}

_PERCENT = {"type": "number", "minimum": 0, "maximum": 100}
_NON_NEGATIVE = {"type": "number", "minimum": 0}

# Fields are optional here; absent metrics are reported per lane instead
LANE_METRICS_SCHEMA = {
    "type": "object",
    "properties": {
        "laneId": {"type": ["string", "integer"]},
        "responseTimeMs": _NON_NEGATIVE,
        "responseTime": _NON_NEGATIVE,
        "throughputOpsPerSec": _NON_NEGATIVE,
        "throughput": _NON_NEGATIVE,
        "gasPrice": {"type": "number", "exclusiveMinimum": 0},
        "loadPct": _PERCENT,
        "load": _PERCENT,
        "uptimePct": _PERCENT,
        "uptime": _PERCENT
    }
}

SNAPSHOT_SCHEMA = {
    "type": "object",
    "additionalProperties": LANE_METRICS_SCHEMA
}

PRICE_SCHEMA = {
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "additionalProperties": {"type": "number", "exclusiveMinimum": 0}
    }
}


def _collect_errors(instance: Any, schema: Dict[str, Any], label: str) -> List[str]:
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(instance), key=lambda e: list(e.path)):
        location = "/".join(str(part) for part in error.path) or "<root>"
        errors.append(f"{label} validation error at {location}: {error.message}")
    return errors


def validate_lane_set(document: Dict[str, Any]) -> List[str]:
    """
    Validate a lane-set document against its JSON schema

    Args:
        document: Parsed lane-set document

    Returns:
        List of validation error messages (empty if valid)
    """
    return _collect_errors(document, LANE_SET_SCHEMA, "Lane set")


def validate_snapshot_document(document: Dict[str, Any]) -> List[str]:
    """Validate a raw ``{laneId: {metric: value}}`` provider payload"""
    return _collect_errors(document, SNAPSHOT_SCHEMA, "Snapshot")


def validate_price_document(document: Dict[str, Any]) -> List[str]:
    """Validate a raw ``{laneId: {token: price}}`` payload"""
    return _collect_errors(document, PRICE_SCHEMA, "Prices")


def parse_snapshot_document(
    document: Mapping[Any, Mapping[str, Any]]
) -> Tuple[Dict[LaneId, MetricsSnapshot], Dict[LaneId, Tuple[str, ...]]]:
    """
    Turn a provider payload into snapshots

    Lanes that cannot be parsed are returned separately with the names
    of the offending fields instead of aborting the whole document.

    Returns:
        Tuple of (snapshots by lane, excluded lanes with their bad fields)
    """
    snapshots: Dict[LaneId, MetricsSnapshot] = {}
    excluded: Dict[LaneId, Tuple[str, ...]] = {}

    for raw_lane, payload in document.items():
        lane = lane_id(raw_lane)
        try:
            snapshots[lane] = MetricsSnapshot.from_dict(lane, payload)
        except MissingMetricError as e:
            logger.warning(f"Excluding lane {lane}: {e}")
            excluded[lane] = e.fields
        except InvalidMetricError as e:
            logger.warning(f"Excluding lane {lane}: {e}")
            excluded[lane] = (e.field_name,)

    return snapshots, excluded


def load_lane_set(path: Union[str, Path]) -> Tuple[LaneId, ...]:
    """
    Load the configured lane set from a YAML or JSON file

    Raises:
        NoLanesConfiguredError: if the file is missing, empty or invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise NoLanesConfiguredError(f"Lane set file not found: {path}")

    with open(config_path, 'r') as f:
        # YAML is a superset of JSON
        document = yaml.safe_load(f) or {}

    errors = validate_lane_set(document)
    if errors:
        for error in errors:
            logger.error(error)
        raise NoLanesConfiguredError(f"Invalid lane set in {path}: {errors[0]}")

    return tuple(lane_id(lane) for lane in document["lanes"])
