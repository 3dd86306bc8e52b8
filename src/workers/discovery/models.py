"""Data models for a competitor discovery run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from workers.analysis.models import CompetitorInsight


@dataclass(frozen=True, slots=True)
class DiscoveryStats:
    total_discovered: int = 0          # insights returned
    new_competitors: int = 0
    existing_competitors: int = 0
    failed_analyses: int = 0


@dataclass(frozen=True, slots=True)
class DiscoveryResult:
    competitors: list[CompetitorInsight] = field(default_factory=list)
    recommended_sources: list[str] = field(default_factory=list)
    search_strategy: dict[str, Any] = field(default_factory=dict)
    stats: DiscoveryStats = field(default_factory=DiscoveryStats)
