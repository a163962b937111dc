"""
Kernel-side structure policy.

The kernel never reads configuration files; ``org_config.bridges`` turns the
loaded YAML into a StructurePolicy and callers inject it into services.  The
defaults here match ``org_config/defaults.yaml``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DepartmentRemovalMode(str, Enum):
    GUARD = "guard"
    ALLOW = "allow"
    CASCADE = "cascade"


@dataclass(frozen=True)
class StructurePolicy:
    """
    Behavioral switches for the hierarchy and workflow services.

    department_removal:
        GUARD refuses while active positions remain in the department;
        ALLOW deactivates anyway (soft orphaning, logged); CASCADE also
        deactivates the department's active positions.
    serialize_reporting_writes:
        Lock every position row read by the cycle walk (FOR UPDATE).
    """

    request_number_prefix: str = "ORG"
    request_number_width: int = 4
    department_removal: DepartmentRemovalMode = DepartmentRemovalMode.GUARD
    default_reports_to_department_head: bool = True
    serialize_reporting_writes: bool = True
    clear_head_on_position_removal: bool = True
    default_page_size: int = 10
    max_page_size: int = 100
    change_log_page_size: int = 20

    def format_request_number(self, year: int, sequence: int) -> str:
        return f"{self.request_number_prefix}-{year}-{sequence:0{self.request_number_width}d}"

    def request_number_prefix_for(self, year: int) -> str:
        return f"{self.request_number_prefix}-{year}-"


DEFAULT_POLICY = StructurePolicy()
