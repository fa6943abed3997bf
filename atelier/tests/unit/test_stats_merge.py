from __future__ import annotations

from datetime import datetime, timezone

from atelier.domain.models import Gallery
from atelier.services.stats import CollectionSpec, StatsSnapshot, merge_status_counts


GALLERIES = CollectionSpec(
    name="galleries",
    status_column=Gallery.status,
    statuses=("active", "archived", "draft"),
)


def test_absent_statuses_report_zero() -> None:
    counts = merge_status_counts(GALLERIES, [("active", 3)])
    assert counts.as_dict() == {"total": 3, "active": 3, "archived": 0, "draft": 0}


def test_unknown_statuses_keep_their_own_key() -> None:
    counts = merge_status_counts(GALLERIES, [("active", 2), ("banned", 1), (None, 1)])
    assert counts.by_status["banned"] == 1
    assert counts.by_status["unknown"] == 1
    assert counts.total == sum(counts.by_status.values()) == 4


def test_snapshot_shape() -> None:
    now = datetime(2026, 1, 2, tzinfo=timezone.utc)
    snapshot = StatsSnapshot(
        collections={"galleries": merge_status_counts(GALLERIES, [])},
        recent_activity=[],
        generated_at=now,
    )
    payload = snapshot.as_dict()
    assert payload["galleries"]["total"] == 0
    assert payload["recentActivity"] == []
    assert payload["generatedAt"] == now.isoformat()
