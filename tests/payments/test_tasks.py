from types import SimpleNamespace

from infrastructure.tasks import TaskDispatcher, celery_app
from infrastructure.tasks.tasks import payments as payment_tasks


def test_dispatcher_schedules_recheck_by_name(monkeypatch):
    sent = []

    def fake_send_task(name, **options):
        sent.append((name, options))
        return SimpleNamespace(id="task-1")

    monkeypatch.setattr(celery_app, "send_task", fake_send_task)
    TaskDispatcher().schedule_pending_recheck("ref_B1_001", "B1", countdown=30)

    assert sent == [(
        "payments.recheck_pending",
        {"kwargs": {"reference": "ref_B1_001", "booking_id": "B1"}, "countdown": 30},
    )]


def test_recheck_task_runs_verification(monkeypatch):
    async def fake_recheck(reference, booking_id):
        return {"success": True, "data": {"status": "paid"}, "manual_review": False}

    monkeypatch.setattr(payment_tasks, "_recheck", fake_recheck)
    result = payment_tasks.recheck_pending("ref_B1_001", "B1")

    assert result["data"]["status"] == "paid"


def test_sweep_fans_out_rechecks(monkeypatch):
    queued = []

    async def fake_stale_pending(older_than, limit):
        assert older_than.total_seconds() == 60
        return [
            {"reference": "ref_B1_001", "booking_id": "B1"},
            {"reference": "ref_B2_001", "booking_id": "B2"},
        ]

    monkeypatch.setattr(payment_tasks, "_stale_pending", fake_stale_pending)
    monkeypatch.setattr(payment_tasks.recheck_pending, "apply_async", lambda **options: queued.append(options))

    assert payment_tasks.sweep_pending(older_than_seconds=60, limit=10) == 2
    assert [q["kwargs"]["booking_id"] for q in queued] == ["B1", "B2"]


def test_beat_runs_the_pending_sweep():
    schedule = celery_app.conf.beat_schedule["payments-sweep-pending"]
    assert schedule["task"] == "payments.sweep_pending"
