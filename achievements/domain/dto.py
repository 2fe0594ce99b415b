from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StatisticsReport:
    scope: str
    total: int
    by_status: dict[str, int]
    by_category: dict[str, int]
    by_competition_level: dict[str, int]


@dataclass(frozen=True)
class OwnerReport:
    owner_id: str
    total: int
    by_status: dict[str, int]
    verified_score_total: float


@dataclass(frozen=True)
class OrphanFinding:
    content_id: str
    owner_id: str
    reason: str
    reference_id: str | None = None


@dataclass(frozen=True)
class ReconcileResult:
    scanned: int
    findings: list[OrphanFinding] = field(default_factory=list)
    repaired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dry_run: bool = False
    references_scanned: int = 0
    # Live references whose content is gone; reported, never repaired.
    unresolved: list[OrphanFinding] = field(default_factory=list)
