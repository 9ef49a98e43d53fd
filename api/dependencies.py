"""
API依赖项 - 组装支付对账组件

密钥只在这里从配置中取出并注入构造函数；业务代码不读取环境变量。
测试通过 app.dependency_overrides 替换网关、锁、计数器、限流器与工作单元。
"""
from datetime import timedelta
from typing import Callable, Optional

from fastapi import Depends

from application.ports.payment_gateway import PaymentGateway
from application.ports.pending_checks import PendingCheckCounter
from application.ports.rate_limiter import RateLimiter
from application.services.verification_service import VerificationService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.lock import BookingLock
from domain.payment.service import PaymentReconciler
from infrastructure.external.cache import get_redis_client_if_ready
from infrastructure.external.payments import get_payment_gateway
from infrastructure.locks import (
    InMemoryBookingLock,
    InMemoryPendingCheckCounter,
    InMemoryRateLimiter,
    RedisBookingLock,
    RedisPendingCheckCounter,
    RedisRateLimiter,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


_gateway: Optional[PaymentGateway] = None
_local_lock = InMemoryBookingLock(blocking_timeout=payment_settings.reconciliation.lock_blocking_timeout)
_local_pending_checks = InMemoryPendingCheckCounter()
_local_rate_limiter = InMemoryRateLimiter(
    limit=payment_settings.webhook.rate_limit,
    window=payment_settings.webhook.rate_limit_window,
)


def get_gateway() -> PaymentGateway:
    """进程级网关单例（复用 HTTP 连接池）"""
    global _gateway
    if _gateway is None:
        _gateway = get_payment_gateway()
    return _gateway


async def shutdown_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


def get_uow_factory() -> Callable[[], AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


def get_booking_lock() -> BookingLock:
    """Redis 可用时使用分布式锁，否则回退到进程内锁"""
    redis = get_redis_client_if_ready()
    if redis is None:
        return _local_lock
    cfg = payment_settings.reconciliation
    return RedisBookingLock(redis, timeout=cfg.lock_timeout, blocking_timeout=cfg.lock_blocking_timeout)


def get_pending_checks() -> PendingCheckCounter:
    redis = get_redis_client_if_ready()
    if redis is None:
        return _local_pending_checks
    return RedisPendingCheckCounter(redis, ttl=payment_settings.reconciliation.pending_counter_ttl)


def get_webhook_rate_limiter() -> RateLimiter:
    redis = get_redis_client_if_ready()
    if redis is None:
        return _local_rate_limiter
    webhook = payment_settings.webhook
    return RedisRateLimiter(redis, limit=webhook.rate_limit, window=webhook.rate_limit_window)


def get_webhook_secret() -> str:
    secret = payment_settings.paystack.webhook_secret
    return secret.get_secret_value() if secret else ""


def get_reconciler(
    uow_factory: Callable[[], AbstractUnitOfWork] = Depends(get_uow_factory),
    lock: BookingLock = Depends(get_booking_lock),
) -> PaymentReconciler:
    return PaymentReconciler(uow_factory=uow_factory, lock=lock)


def get_webhook_service(
    gateway: PaymentGateway = Depends(get_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    webhook_secret: str = Depends(get_webhook_secret),
    rate_limiter: RateLimiter = Depends(get_webhook_rate_limiter),
) -> WebhookService:
    webhook = payment_settings.webhook
    return WebhookService(
        gateway=gateway,
        reconciler=reconciler,
        webhook_secret=webhook_secret,
        window=timedelta(seconds=webhook.tolerance_seconds),
        ip_allowlist=webhook.ip_allowlist,
        rate_limiter=rate_limiter,
        rate_limit_window=webhook.rate_limit_window,
    )


def get_recheck_scheduler() -> Optional[Callable[[str, str], None]]:
    """仅在配置了 broker 时调度后台复查"""
    if not settings.redis.url:
        return None
    from infrastructure.tasks.utils.dispatcher import TaskDispatcher

    return TaskDispatcher().schedule_pending_recheck


def get_verification_service(
    gateway: PaymentGateway = Depends(get_gateway),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    pending_checks: PendingCheckCounter = Depends(get_pending_checks),
    schedule_recheck: Optional[Callable[[str, str], None]] = Depends(get_recheck_scheduler),
) -> VerificationService:
    return VerificationService(
        gateway=gateway,
        reconciler=reconciler,
        pending_checks=pending_checks,
        max_pending_checks=payment_settings.reconciliation.max_pending_checks,
        schedule_recheck=schedule_recheck,
    )
