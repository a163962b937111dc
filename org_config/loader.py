"""
Configuration loader (``org_config.loader``).

Responsibility
--------------
Loads a YAML policy file and parses it into ``org_config.schema``
dataclasses.  Callers use ``org_config.get_active_config()``, not this
module directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` naming the offending key.
* Unknown keys are rejected so that a typo never silently falls back to
  a default.
* ``compute_checksum`` is deterministic for identical content.

Failure modes
-------------
* Missing file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from org_config.schema import (
    DEPARTMENT_REMOVAL_MODES,
    HierarchyConfig,
    OrgStructureConfig,
    QueryConfig,
    RequestNumberConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {unknown}")
    return section


def _bool(section: dict[str, Any], key: str, default: bool, where: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{where}.{key}' must be true or false, got {value!r}")
    return value


def _positive_int(section: dict[str, Any], key: str, default: int, where: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"'{where}.{key}' must be a positive integer, got {value!r}")
    return value


def parse_request_numbers(data: dict[str, Any]) -> RequestNumberConfig:
    section = _section(data, "request_numbers", {"prefix", "sequence_width"})
    prefix = section.get("prefix", "ORG")
    if not isinstance(prefix, str) or not prefix.strip() or "-" in prefix:
        raise ValueError(f"'request_numbers.prefix' must be a non-blank string without '-', got {prefix!r}")
    return RequestNumberConfig(
        prefix=prefix.strip().upper(),
        sequence_width=_positive_int(section, "sequence_width", 4, "request_numbers"),
    )


def parse_hierarchy(data: dict[str, Any]) -> HierarchyConfig:
    section = _section(
        data,
        "hierarchy",
        {
            "department_removal",
            "default_reports_to_department_head",
            "serialize_reporting_writes",
            "clear_head_on_position_removal",
        },
    )
    removal = section.get("department_removal", "guard")
    if removal not in DEPARTMENT_REMOVAL_MODES:
        raise ValueError(
            f"'hierarchy.department_removal' must be one of {list(DEPARTMENT_REMOVAL_MODES)}, "
            f"got {removal!r}"
        )
    return HierarchyConfig(
        department_removal=removal,
        default_reports_to_department_head=_bool(
            section, "default_reports_to_department_head", True, "hierarchy"
        ),
        serialize_reporting_writes=_bool(section, "serialize_reporting_writes", True, "hierarchy"),
        clear_head_on_position_removal=_bool(
            section, "clear_head_on_position_removal", True, "hierarchy"
        ),
    )


def parse_queries(data: dict[str, Any]) -> QueryConfig:
    section = _section(
        data, "queries", {"default_page_size", "max_page_size", "change_log_page_size"}
    )
    config = QueryConfig(
        default_page_size=_positive_int(section, "default_page_size", 10, "queries"),
        max_page_size=_positive_int(section, "max_page_size", 100, "queries"),
        change_log_page_size=_positive_int(section, "change_log_page_size", 20, "queries"),
    )
    if config.default_page_size > config.max_page_size:
        raise ValueError("'queries.default_page_size' exceeds 'queries.max_page_size'")
    return config


def parse_config(data: dict[str, Any], source_path: str | None = None) -> OrgStructureConfig:
    """Parse a loaded YAML dict into an OrgStructureConfig."""
    unknown = sorted(set(data) - {"config_id", "version", "request_numbers", "hierarchy", "queries"})
    if unknown:
        raise ValueError(f"Unknown top-level configuration keys: {unknown}")
    config_id = data.get("config_id")
    if not isinstance(config_id, str) or not config_id:
        raise ValueError("'config_id' is required")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"'version' must be an integer, got {version!r}")

    return OrgStructureConfig(
        config_id=config_id,
        version=version,
        request_numbers=parse_request_numbers(data),
        hierarchy=parse_hierarchy(data),
        queries=parse_queries(data),
        checksum=compute_checksum(data),
        source_path=source_path,
    )
