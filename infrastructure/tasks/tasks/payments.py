"""Payment re-check Celery tasks.

``payments.recheck_pending`` re-runs verification for one reference;
``payments.sweep_pending`` fans out re-checks for bookings stuck in pending.
Each task run owns its event loop, so loop-bound resources (DB engine pool,
Redis connections, HTTP client) are created and disposed inside the run.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from celery import shared_task
from redis import asyncio as aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from application.dtos.payments import VerifyPaymentRequest
from application.services.verification_service import VerificationService
from core.config import settings
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.payment.exceptions import ProviderUnreachableException
from domain.payment.service import PaymentReconciler
from infrastructure.database import build_async_url
from infrastructure.external.cache.redis_client import RedisClient
from infrastructure.external.payments import get_payment_gateway
from infrastructure.locks import (
    InMemoryBookingLock,
    InMemoryPendingCheckCounter,
    RedisBookingLock,
    RedisPendingCheckCounter,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


def _schedule(reference: str, booking_id: str) -> None:
    from ..utils.dispatcher import TaskDispatcher

    TaskDispatcher().schedule_pending_recheck(reference, booking_id)


async def _recheck(reference: str, booking_id: str) -> Dict[str, Any]:
    engine = create_async_engine(build_async_url(settings.database.url))
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    redis_raw = (
        aioredis.from_url(settings.redis.url, encoding="utf-8", decode_responses=True)
        if settings.redis.url
        else None
    )
    gateway = get_payment_gateway()
    try:
        cfg = payment_settings.reconciliation
        if redis_raw is not None:
            redis = RedisClient(redis_raw, namespace=settings.redis.namespace)
            lock = RedisBookingLock(redis, timeout=cfg.lock_timeout, blocking_timeout=cfg.lock_blocking_timeout)
            pending_checks = RedisPendingCheckCounter(redis, ttl=cfg.pending_counter_ttl)
        else:
            lock = InMemoryBookingLock(blocking_timeout=cfg.lock_blocking_timeout)
            pending_checks = InMemoryPendingCheckCounter()

        service = VerificationService(
            gateway=gateway,
            reconciler=PaymentReconciler(
                uow_factory=lambda: SQLAlchemyUnitOfWork(session_factory=session_factory),
                lock=lock,
            ),
            pending_checks=pending_checks,
            max_pending_checks=cfg.max_pending_checks,
            schedule_recheck=_schedule if redis_raw is not None else None,
        )
        response = await service.verify(VerifyPaymentRequest(reference=reference, booking_id=booking_id))
        return response.model_dump(mode="json", exclude_none=True)
    finally:
        await gateway.aclose()
        if redis_raw is not None:
            await redis_raw.aclose()
        await engine.dispose()


async def _stale_pending(older_than: timedelta, limit: int) -> List[Dict[str, str]]:
    engine = create_async_engine(build_async_url(settings.database.url))
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    try:
        async with SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=True) as uow:
            bookings = await uow.booking_repository.list_pending(
                datetime.now(timezone.utc) - older_than, limit=limit
            )
        return [
            {"reference": b.payment.last_event_reference, "booking_id": b.id}
            for b in bookings
            if b.payment.last_event_reference
        ]
    finally:
        await engine.dispose()


@shared_task(
    name="payments.recheck_pending",
    bind=True,
    base=BaseTask,
    autoretry_for=(ProviderUnreachableException,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def recheck_pending(self, reference: str, booking_id: str) -> Dict[str, Any]:
    """Re-verify a pending payment against the provider."""
    result = self.run_async(_recheck(reference, booking_id))
    logger.info(
        "payment_recheck_completed",
        reference=reference,
        booking_id=booking_id,
        status=(result.get("data") or {}).get("status"),
        manual_review=result.get("manual_review"),
    )
    return result


@shared_task(name="payments.sweep_pending", bind=True, base=BaseTask)
def sweep_pending(self, older_than_seconds: int = 900, limit: int = 100) -> int:
    """Queue re-checks for bookings that have been pending for too long."""
    items = self.run_async(_stale_pending(timedelta(seconds=older_than_seconds), limit))
    for item in items:
        recheck_pending.apply_async(
            kwargs={"reference": item["reference"], "booking_id": item["booking_id"]},
        )
    logger.info("payment_pending_sweep", queued=len(items))
    return len(items)
