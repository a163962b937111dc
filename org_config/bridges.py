"""
Config-to-kernel bridge (``org_config.bridges``).

The kernel never imports ``org_config``; this module translates the loaded
configuration into the kernel's own ``StructurePolicy``.
"""

from __future__ import annotations

from org_config.schema import OrgStructureConfig
from org_kernel.domain.policy import DepartmentRemovalMode, StructurePolicy


def build_structure_policy(config: OrgStructureConfig) -> StructurePolicy:
    return StructurePolicy(
        request_number_prefix=config.request_numbers.prefix,
        request_number_width=config.request_numbers.sequence_width,
        department_removal=DepartmentRemovalMode(config.hierarchy.department_removal),
        default_reports_to_department_head=config.hierarchy.default_reports_to_department_head,
        serialize_reporting_writes=config.hierarchy.serialize_reporting_writes,
        clear_head_on_position_removal=config.hierarchy.clear_head_on_position_removal,
        default_page_size=config.queries.default_page_size,
        max_page_size=config.queries.max_page_size,
        change_log_page_size=config.queries.change_log_page_size,
    )
