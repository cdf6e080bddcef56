from __future__ import annotations


def configure_reservations_schedule(celery_app) -> None:
    celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
    celery_app.conf.beat_schedule.update(
        {
            "sweep-stale-reservations-every-5-minutes": {
                "task": "nudge_ledger.workers.tasks.reservations.sweep_stale_reservations",
                "schedule": 300.0,
                "options": {"queue": "q_normal"},
            },
        }
    )
