"""
Configuration Loader (``citation_config.loader``).

Responsibility
--------------
Loads the YAML configuration and the violation catalog seed and parses
them into typed dataclasses.  Runtime callers use
``citation_config.get_active_config()``; the functions here are the
building blocks it is assembled from.

Architecture position
---------------------
**Config layer** -- imports only ``citation_kernel.domain`` value types
(to build ``RuleDefinition`` objects) and PyYAML.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields never get silent defaults.
* Every parsed object is a frozen dataclass.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError``.
* Wrong types or out-of-range values  -> ``ValueError``.
* Malformed fine schedules  -> ``ScheduleValidationError`` from the kernel.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from citation_config.schema import (
    CitationConfig,
    DueDateConfig,
    NumberingConfig,
    OffenseHistoryConfig,
)
from citation_kernel.domain.fine_schedule import parse_schedule
from citation_kernel.domain.violation import RuleDefinition


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def merge_overrides(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_overrides(merged[key], value)
        else:
            merged[key] = value
    return merged


def _require_bool(section: str, data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _require_int(section: str, data: dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ValueError(f"{section}.{key} must be an integer >= {minimum}, got {value!r}")
    return value


def _require_prefix(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.isalpha() or not value.isupper():
        raise ValueError(f"numbering.{key} must be upper-case letters, got {value!r}")
    return value


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    width = _require_int("numbering", data, "width", 6, 1)
    if width > 12:
        raise ValueError(f"numbering.width must be <= 12, got {width}")
    return NumberingConfig(
        citation_prefix=_require_prefix(data, "citation_prefix", "TCT"),
        contest_prefix=_require_prefix(data, "contest_prefix", "CON"),
        width=width,
    )


def parse_due_dates(data: dict[str, Any]) -> DueDateConfig:
    return DueDateConfig(
        default_due_days=_require_int("due_dates", data, "default_due_days", 15, 0),
    )


def parse_offense_history(data: dict[str, Any]) -> OffenseHistoryConfig:
    return OffenseHistoryConfig(
        count_contested=_require_bool("offense_history", data, "count_contested", False),
        count_dismissed=_require_bool("offense_history", data, "count_dismissed", False),
    )


def parse_config(data: dict[str, Any], base_dir: Path) -> CitationConfig:
    """
    Parse a merged configuration mapping.

    Preconditions:
        - ``data`` contains ``config_id`` and ``version``.
    Postconditions:
        - Returns a frozen ``CitationConfig`` with ``checksum`` set.
    Raises:
        KeyError: if required keys are missing.
        ValueError: on wrong types or out-of-range values.
    """
    seed = data.get("catalog_seed")
    seed_path = None
    if seed:
        seed_path = Path(seed)
        if not seed_path.is_absolute():
            seed_path = base_dir / seed_path

    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"version must be an integer, got {version!r}")

    return CitationConfig(
        config_id=str(data["config_id"]),
        version=version,
        numbering=parse_numbering(data.get("numbering") or {}),
        due_dates=parse_due_dates(data.get("due_dates") or {}),
        offense_history=parse_offense_history(data.get("offense_history") or {}),
        catalog_seed_path=seed_path,
        checksum=compute_checksum(data),
    )


def parse_rule_definition(data: dict[str, Any]) -> RuleDefinition:
    """
    Parse one catalog entry.

    Raises:
        KeyError: if code, title, fine_structure or fine_schedule is missing.
        ScheduleValidationError: if the schedule is malformed.
    """
    return RuleDefinition(
        code=str(data["code"]),
        title=data["title"],
        schedule=parse_schedule(data["fine_structure"], data["fine_schedule"]),
        description=data.get("description"),
        legal_reference=data.get("legal_reference"),
        accessory_penalty=data.get("accessory_penalty"),
        remarks=data.get("remarks"),
    )


def load_catalog_seed(path: Path) -> list[RuleDefinition]:
    """Load the violation catalog seed file."""
    data = load_yaml_file(path)
    entries = data["violations"]
    if not isinstance(entries, list):
        raise ValueError(f"{path}: 'violations' must be a list")
    definitions = [parse_rule_definition(entry) for entry in entries]
    codes = [d.code for d in definitions]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"{path}: duplicate violation codes {duplicates}")
    return definitions


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
