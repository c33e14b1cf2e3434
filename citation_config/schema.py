"""
Citation desk configuration schema.

Frozen dataclasses that the loader produces from YAML.  They describe
numbering, due dates and offense-history counting; bridges.py translates
them into the kernel's policy objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class NumberingConfig:
    """Document number prefixes and digit width."""

    citation_prefix: str = "TCT"
    contest_prefix: str = "CON"
    width: int = 6


@dataclass(frozen=True)
class DueDateConfig:
    default_due_days: int = 15


@dataclass(frozen=True)
class OffenseHistoryConfig:
    """Which prior citations count toward the offense ordinal (VOID never does)."""

    count_contested: bool = False
    count_dismissed: bool = False


@dataclass(frozen=True)
class CitationConfig:
    """The complete, validated configuration for one deployment."""

    config_id: str
    version: int
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    due_dates: DueDateConfig = field(default_factory=DueDateConfig)
    offense_history: OffenseHistoryConfig = field(default_factory=OffenseHistoryConfig)
    catalog_seed_path: Path | None = None
    checksum: str = ""
