"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue
from kombu.utils.url import maybe_sanitize_url

from core.config import settings
from core.settings import payment_settings
from .beat import CELERY_BEAT_SCHEDULE


# Task modules are discovered via this tuple so new packages only need to be
# listed here rather than altering the runtime imports scattered elsewhere.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

# 单次复查最坏耗时：每次尝试的总超时 + 退避上限，再留出对账写库的余量
_RECHECK_BUDGET = int(
    payment_settings.retry.attempts
    * (payment_settings.timeouts.total + payment_settings.retry.max_backoff)
) + 30


celery_app = Celery("booking_payments")

celery_app.conf.update(
    # Connection endpoints – fall back to env variables when settings omit them.
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    # JSON keeps payloads interoperable and avoids arbitrary code execution.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after the reconciliation commits so a lost worker re-runs it;
    # re-running is safe because reconciliation is idempotent.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_soft_time_limit=_RECHECK_BUDGET,
    task_time_limit=_RECHECK_BUDGET + 15,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_queues=(
        Queue("high"),
        Queue("default"),
    ),
    task_routes={
        "payments.*": {"queue": "high"},
    },
    # Keep provider verification traffic under the provider's rate limits
    task_annotations={
        "payments.recheck_pending": {"rate_limit": "30/m"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    # 连接串可能带密码，只记录脱敏后的地址
    logger.info(
        "celery_configured",
        broker=maybe_sanitize_url(sender.conf.broker_url),
        result_backend=maybe_sanitize_url(sender.conf.result_backend),
    )
