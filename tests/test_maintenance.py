"""Retention purge task, run eagerly without a broker."""

from __future__ import annotations

from shelfnet.tasks import maintenance


def test_purge_task_uses_explicit_retention(monkeypatch):
    seen = []

    async def fake_purge(retention_days: int) -> int:
        seen.append(retention_days)
        return 7

    monkeypatch.setattr(maintenance, "purge_activities", fake_purge)
    result = maintenance.purge_old_activities.apply(kwargs={"retention_days": 30}).get()

    assert seen == [30]
    assert result["deleted"] == 7
    assert result["retention_days"] == 30
    assert result["status"] == "completed"


def test_purge_task_defaults_to_configured_retention(monkeypatch):
    seen = []

    async def fake_purge(retention_days: int) -> int:
        seen.append(retention_days)
        return 0

    monkeypatch.setattr(maintenance, "purge_activities", fake_purge)
    maintenance.purge_old_activities.apply().get()

    assert seen == [maintenance.settings.activity_retention_days]


def test_beat_runs_purge_daily():
    from shelfnet.tasks.celery_app import PURGE_TASK, celery

    entry = celery.conf.beat_schedule["purge-old-activities"]
    assert entry["task"] == PURGE_TASK
    assert entry["schedule"].hour == {maintenance.settings.activity_purge_hour_utc}
