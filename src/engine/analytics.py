"""Analytics engine for the team dashboard.

Fetches every collection the dashboard needs in one concurrent round and
reduces it to:
- Agreement adoption (active agreements signed by the whole roster)
- Deliverable status distribution with its display colors
- Daily activity for the trailing 84 days (contribution graph)
- Per-member workload, busiest first
- Feed totals: updates this week, open help requests

``compute_metrics`` is pure: identical raw data and ``now`` give identical
output. The activity window slides with ``now``, so the same data reads
differently on a different day.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from uuid import UUID

from src.engine.base import LoadableView
from src.models.agreement import Agreement, AgreementSignature
from src.models.common import AgreementStatus, DeliverableStatus, as_utc, utc_now
from src.models.deliverable import Deliverable
from src.models.team import TeamMember
from src.models.update import Update
from src.repositories.gateway import DataGateway

logger = logging.getLogger(__name__)

ACTIVITY_WINDOW_DAYS = 84
RECENT_UPDATES_DAYS = 7

# Presentation tokens, passed through untouched.
STATUS_COLORS: dict[DeliverableStatus, str] = {
    DeliverableStatus.COMPLETED: "var(--color-success)",
    DeliverableStatus.IN_PROGRESS: "var(--color-primary)",
    DeliverableStatus.AT_RISK: "var(--color-error)",
    DeliverableStatus.UPCOMING: "var(--color-muted)",
}

STATUS_LABELS: dict[DeliverableStatus, str] = {
    DeliverableStatus.COMPLETED: "Completed",
    DeliverableStatus.IN_PROGRESS: "In Progress",
    DeliverableStatus.AT_RISK: "At Risk",
    DeliverableStatus.UPCOMING: "Upcoming",
}


@dataclass(frozen=True)
class RawAnalyticsData:
    """Everything ``compute_metrics`` reads, as fetched."""

    agreements: tuple[Agreement, ...] = ()
    signatures: tuple[AgreementSignature, ...] = ()
    deliverables: tuple[Deliverable, ...] = ()
    updates: tuple[Update, ...] = ()
    members: tuple[TeamMember, ...] = ()


@dataclass(frozen=True)
class StatusDistribution:
    status: DeliverableStatus
    label: str
    count: int
    color: str

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "label": self.label,
            "count": self.count,
            "color": self.color,
        }


@dataclass(frozen=True)
class DailyActivity:
    day: date
    count: int

    def to_dict(self) -> dict:
        return {"date": self.day.isoformat(), "count": self.count}


@dataclass(frozen=True)
class MemberWorkload:
    member_id: UUID
    member_name: str
    role: str
    deliverable_count: int
    at_risk_count: int
    completed_count: int

    def to_dict(self) -> dict:
        return {
            "member_id": str(self.member_id),
            "member_name": self.member_name,
            "role": self.role,
            "deliverable_count": self.deliverable_count,
            "at_risk_count": self.at_risk_count,
            "completed_count": self.completed_count,
        }


@dataclass(frozen=True)
class AnalyticsMetrics:
    """Dashboard metrics at one point in time."""

    agreement_adoption_percent: int
    total_agreements: int
    active_agreements: int
    fully_signed_agreements: int
    total_deliverables: int
    status_counts: dict[DeliverableStatus, int]
    status_distribution: tuple[StatusDistribution, ...]
    total_updates: int
    updates_this_week: int
    open_help_requests: int
    daily_activity: tuple[DailyActivity, ...]
    member_workloads: tuple[MemberWorkload, ...]
    generated_at: datetime = field(compare=False)

    def to_dict(self) -> dict:
        return {
            "agreement_adoption_percent": self.agreement_adoption_percent,
            "total_agreements": self.total_agreements,
            "active_agreements": self.active_agreements,
            "fully_signed_agreements": self.fully_signed_agreements,
            "total_deliverables": self.total_deliverables,
            "completed_count": self.status_counts[DeliverableStatus.COMPLETED],
            "in_progress_count": self.status_counts[DeliverableStatus.IN_PROGRESS],
            "at_risk_count": self.status_counts[DeliverableStatus.AT_RISK],
            "upcoming_count": self.status_counts[DeliverableStatus.UPCOMING],
            "status_distribution": [s.to_dict() for s in self.status_distribution],
            "total_updates": self.total_updates,
            "updates_this_week": self.updates_this_week,
            "open_help_requests": self.open_help_requests,
            "daily_activity": [d.to_dict() for d in self.daily_activity],
            "member_workloads": [w.to_dict() for w in self.member_workloads],
            "generated_at": self.generated_at.isoformat(),
        }


def adoption_percent(fully_signed: int, active: int) -> int:
    """Rounded percentage, halves rounding up. 0 when nothing is active."""
    if active <= 0:
        return 0
    return (fully_signed * 200 + active) // (2 * active)


def activity_window(today: date, days: int = ACTIVITY_WINDOW_DAYS) -> list[date]:
    """``days`` consecutive dates ending with ``today``, oldest first."""
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def compute_metrics(raw: RawAnalyticsData, *, now: datetime) -> AnalyticsMetrics:
    """Reduce raw collections to dashboard metrics. No I/O."""
    now = as_utc(now)
    total_members = len(raw.members)

    # Adoption
    signed_per_agreement = Counter(s.agreement_id for s in raw.signatures)
    active = [a for a in raw.agreements if a.status == AgreementStatus.ACTIVE]
    fully_signed = sum(1 for a in active if signed_per_agreement[a.id] >= total_members)

    # Deliverable health
    status_counts = {status: 0 for status in DeliverableStatus}
    for d in raw.deliverables:
        status_counts[d.status] += 1
    distribution = tuple(
        StatusDistribution(
            status=status,
            label=STATUS_LABELS[status],
            count=status_counts[status],
            color=STATUS_COLORS[status],
        )
        for status in (
            DeliverableStatus.COMPLETED,
            DeliverableStatus.IN_PROGRESS,
            DeliverableStatus.AT_RISK,
            DeliverableStatus.UPCOMING,
        )
    )

    # Feed
    week_ago = now - timedelta(days=RECENT_UPDATES_DAYS)
    updates_this_week = sum(1 for u in raw.updates if as_utc(u.created_at) > week_ago)
    open_help_requests = sum(1 for u in raw.updates if u.is_help_request)

    # Activity, bucketed by UTC calendar day
    events: Counter[date] = Counter()
    for u in raw.updates:
        events[as_utc(u.created_at).date()] += 1
    for s in raw.signatures:
        events[as_utc(s.signed_at).date()] += 1
    for d in raw.deliverables:
        created = as_utc(d.created_at)
        events[created.date()] += 1
        updated = as_utc(d.updated_at)
        if updated != created:
            events[updated.date()] += 1
    daily = tuple(
        DailyActivity(day=day, count=events.get(day, 0)) for day in activity_window(now.date())
    )

    # Workload
    workloads = []
    for member in raw.members:
        owned = [d for d in raw.deliverables if d.owner_id == member.id]
        workloads.append(MemberWorkload(
            member_id=member.id,
            member_name=member.name,
            role=member.role.value,
            deliverable_count=len(owned),
            at_risk_count=sum(1 for d in owned if d.status == DeliverableStatus.AT_RISK),
            completed_count=sum(1 for d in owned if d.status == DeliverableStatus.COMPLETED),
        ))
    workloads.sort(key=lambda w: w.deliverable_count, reverse=True)

    return AnalyticsMetrics(
        agreement_adoption_percent=adoption_percent(fully_signed, len(active)),
        total_agreements=len(raw.agreements),
        active_agreements=len(active),
        fully_signed_agreements=fully_signed,
        total_deliverables=len(raw.deliverables),
        status_counts=status_counts,
        status_distribution=distribution,
        total_updates=len(raw.updates),
        updates_this_week=updates_this_week,
        open_help_requests=open_help_requests,
        daily_activity=daily,
        member_workloads=tuple(workloads),
        generated_at=now,
    )


class AnalyticsEngine(LoadableView):
    """Loads raw collections and keeps the latest computed metrics."""

    load_error_message = "Failed to load analytics"

    def __init__(self, gateway: DataGateway, *, clock: Callable[[], datetime] = utc_now) -> None:
        super().__init__(gateway)
        self._clock = clock
        self.metrics: AnalyticsMetrics | None = None

    async def fetch_raw_data(self) -> RawAnalyticsData:
        """Five selects issued together; the first failure propagates."""
        agreements, signatures, deliverables, updates, members = await asyncio.gather(
            self._gateway.select("agreements", order_by="created_at"),
            self._gateway.select("agreement_signatures", order_by="signed_at"),
            self._gateway.select("deliverables", order_by="created_at"),
            self._gateway.select("updates", order_by="created_at"),
            self._gateway.select("team_members", order_by="name"),
        )
        return RawAnalyticsData(
            agreements=tuple(Agreement.model_validate(r) for r in agreements),
            signatures=tuple(AgreementSignature.model_validate(r) for r in signatures),
            deliverables=tuple(Deliverable.model_validate(r) for r in deliverables),
            updates=tuple(Update.model_validate(r) for r in updates),
            members=tuple(TeamMember.model_validate(r) for r in members),
        )

    async def _fetch(self) -> RawAnalyticsData:
        return await self.fetch_raw_data()

    def _accept(self, data: RawAnalyticsData) -> None:
        self.metrics = compute_metrics(data, now=self._clock())
        logger.info(
            "Analytics computed: %d agreements, %d deliverables, %d updates",
            len(data.agreements), len(data.deliverables), len(data.updates),
        )

    def compute(self, raw: RawAnalyticsData) -> AnalyticsMetrics:
        return compute_metrics(raw, now=self._clock())
