"""
citation_config -- single public entrypoint for citation desk configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration -- sits above ``citation_kernel`` and below
    ``citation_services``.  The kernel MUST NEVER import from
    ``citation_config``; ``bridges`` translates the config into kernel
    policy objects.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Deterministic: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the defaults or the override file is missing.
    - ``ValueError`` / ``KeyError`` -- structural validation failures.

Audit relevance:
    Every ``get_active_config()`` call emits a ``CITATION_CONFIG_TRACE``
    log entry with the config id, version and checksum, tying each
    issuance back to the configuration that numbered and priced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from citation_config.bridges import build_issuance_policy
from citation_config.loader import (
    load_catalog_seed,
    load_yaml_file,
    merge_overrides,
    parse_config,
)
from citation_config.schema import (
    CitationConfig,
    DueDateConfig,
    NumberingConfig,
    OffenseHistoryConfig,
)

_logger = logging.getLogger("citation_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> CitationConfig:
    """The ONLY public configuration entrypoint.

    Reads ``defaults.yaml`` and deep-merges the optional override file over
    it.  A relative ``catalog_seed`` resolves against the directory of the
    file that sets it.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If validation fails.
        KeyError: If a required key is missing.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    base_dir = DEFAULTS_PATH.parent

    if config_path is not None:
        override_path = Path(config_path)
        override = load_yaml_file(override_path)
        if "catalog_seed" in override:
            base_dir = override_path.parent
        data = merge_overrides(data, override)

    config = parse_config(data, base_dir)

    _logger.info(
        "CITATION_CONFIG_TRACE",
        extra={
            "trace_type": "CITATION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "override_path": str(config_path) if config_path is not None else None,
        },
    )
    return config


__all__ = [
    "CitationConfig",
    "DueDateConfig",
    "NumberingConfig",
    "OffenseHistoryConfig",
    "build_issuance_policy",
    "get_active_config",
    "load_catalog_seed",
]
