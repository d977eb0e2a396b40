"""Dashboard metrics aggregation.

Snapshots are computed from a single consistent store read on every call. Nothing
is cached and nothing is written, so two calls over unchanged data return equal
snapshots.
"""

from collections import Counter
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from docuhealth.db.repositories import MetricsSource, RecordFacts, RecordStore
from docuhealth.models.documents import DeclaredType
from docuhealth.models.metrics import HisSyncStatus, MetricsSnapshot, TrendBucket
from docuhealth.models.processing import ProcessingStatus

TREND_DAYS = 7
HIS_SYNC_FULL_RATIO = 0.9

# Fixed English abbreviations keep labels independent of process locale
_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def day_label(day: date) -> str:
    """Short chart label, e.g. ``"05 Oct"``."""
    return f"{day.day:02d} {_MONTH_ABBR[day.month - 1]}"


def his_sync_status(ratio: float | None) -> HisSyncStatus:
    if not ratio:
        return "No"
    return "Yes" if ratio >= HIS_SYNC_FULL_RATIO else "Partial"


def average_confidence(records: list[RecordFacts]) -> float | None:
    """Mean confidence over scored records; None when nothing was scored."""
    scores = [r.confidence_score for r in records if r.confidence_score is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 3)


def build_snapshot(source: MetricsSource, today: date, tz: ZoneInfo) -> MetricsSnapshot:
    """Fold store facts into a snapshot for ``today`` in ``tz``.

    Args:
        source: Records of the trailing window plus the open ticket count
        today: Current calendar day in the reporting timezone
        tz: Reporting timezone used to bucket ``started_at``

    Returns:
        Snapshot with a zero-filled 7-day trend, oldest first
    """
    days = [today - timedelta(days=offset) for offset in range(TREND_DAYS - 1, -1, -1)]
    volume_by_day: Counter[date] = Counter()
    window: list[RecordFacts] = []
    for record in source.records:
        local_day = record.started_at.astimezone(tz).date()
        if days[0] <= local_day <= today:
            volume_by_day[local_day] += 1
            window.append(record)

    todays = [r for r in window if r.started_at.astimezone(tz).date() == today]
    completed = [r for r in window if r.status == ProcessingStatus.completed]
    synced = sum(1 for r in completed if r.his_synced)
    ratio = round(synced / len(completed), 4) if completed else None

    by_type = {declared.value: 0 for declared in DeclaredType}
    for record in window:
        by_type[record.declared_type] = by_type.get(record.declared_type, 0) + 1

    return MetricsSnapshot(
        documents_today=len(todays),
        failed_today=sum(1 for r in todays if r.status == ProcessingStatus.failed),
        pending_validations=source.open_tickets,
        avg_accuracy=average_confidence(completed),
        his_sync_ratio=ratio,
        his_sync_status=his_sync_status(ratio),
        trend=[
            TrendBucket(day=day, day_label=day_label(day), volume=volume_by_day[day])
            for day in days
        ],
        volume_by_declared_type=by_type,
    )


class MetricsAggregator:
    """Point-in-time dashboard snapshots over the record store."""

    def __init__(
        self,
        store: RecordStore,
        timezone: str | ZoneInfo,
        clock: Callable[[], datetime],
    ) -> None:
        """Initialize aggregator.

        Args:
            store: Record store to read from
            timezone: Reporting timezone (IANA name or ZoneInfo)
            clock: Returns the current aware datetime
        """
        self._store = store
        self._tz = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self._clock = clock

    def window_start(self, today: date) -> datetime:
        """Midnight of the oldest trend day, in the reporting timezone."""
        first_day = today - timedelta(days=TREND_DAYS - 1)
        return datetime.combine(first_day, time.min, tzinfo=self._tz)

    async def snapshot(self) -> MetricsSnapshot:
        """Compute current dashboard figures from one store read."""
        today = self._clock().astimezone(self._tz).date()
        source = await self._store.load_metrics_source(self.window_start(today))
        return build_snapshot(source, today, self._tz)
