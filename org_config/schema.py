"""
Configuration schema (``org_config.schema``).

Frozen dataclasses produced by ``org_config.loader``.  No I/O here.
"""

from __future__ import annotations

from dataclasses import dataclass

DEPARTMENT_REMOVAL_MODES = ("guard", "allow", "cascade")


@dataclass(frozen=True)
class RequestNumberConfig:
    prefix: str = "ORG"
    sequence_width: int = 4


@dataclass(frozen=True)
class HierarchyConfig:
    department_removal: str = "guard"
    default_reports_to_department_head: bool = True
    serialize_reporting_writes: bool = True
    clear_head_on_position_removal: bool = True


@dataclass(frozen=True)
class QueryConfig:
    default_page_size: int = 10
    max_page_size: int = 100
    change_log_page_size: int = 20


@dataclass(frozen=True)
class OrgStructureConfig:
    """Root configuration object returned by ``get_active_config()``."""

    config_id: str
    version: int
    request_numbers: RequestNumberConfig
    hierarchy: HierarchyConfig
    queries: QueryConfig
    checksum: str = ""
    source_path: str | None = None
