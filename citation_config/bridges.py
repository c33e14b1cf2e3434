"""
Config -> Kernel Bridges.

Functions that convert a CitationConfig into kernel policy objects.  They
live here because the kernel must never import citation_config.

Usage:
    from citation_config.bridges import build_issuance_policy

    config = get_active_config()
    policy = build_issuance_policy(config)
"""

from __future__ import annotations

from citation_config.schema import CitationConfig
from citation_kernel.domain.policy import IssuancePolicy, OffenseCountingPolicy


def build_offense_counting_policy(config: CitationConfig) -> OffenseCountingPolicy:
    return OffenseCountingPolicy(
        count_contested=config.offense_history.count_contested,
        count_dismissed=config.offense_history.count_dismissed,
    )


def build_issuance_policy(config: CitationConfig) -> IssuancePolicy:
    """Numbering, due-date and offense-counting rules for the services."""
    return IssuancePolicy(
        citation_prefix=config.numbering.citation_prefix,
        contest_prefix=config.numbering.contest_prefix,
        number_width=config.numbering.width,
        default_due_days=config.due_dates.default_due_days,
        offense_counting=build_offense_counting_policy(config),
    )
