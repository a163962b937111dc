"""
org_config -- single public entrypoint for organization-structure configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.  ``get_active_policy()`` returns the kernel-side
    StructurePolicy built from it.

Architecture position:
    Sits above ``org_kernel``.  The kernel MUST NEVER import from
    ``org_config``; ``org_config.bridges`` translates config into kernel
    inputs.

Failure modes:
    - ``FileNotFoundError`` -- the given config path does not exist.
    - ``ValueError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
from pathlib import Path

from org_config.bridges import build_structure_policy
from org_config.loader import load_yaml_file, parse_config
from org_config.schema import OrgStructureConfig
from org_kernel.domain.policy import StructurePolicy

_logger = logging.getLogger("org_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "OrgStructureConfig",
    "get_active_config",
    "get_active_policy",
]


def get_active_config(config_path: Path | str | None = None) -> OrgStructureConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Returns:
        A validated, frozen OrgStructureConfig.  An ``ORG_CONFIG_TRACE`` log
        entry is emitted on every successful call.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path), source_path=str(path))

    _logger.info(
        "ORG_CONFIG_TRACE",
        extra={
            "trace_type": "ORG_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "department_removal": config.hierarchy.department_removal,
        },
    )
    return config


def get_active_policy(config_path: Path | str | None = None) -> StructurePolicy:
    """StructurePolicy for the active configuration."""
    return build_structure_policy(get_active_config(config_path))
