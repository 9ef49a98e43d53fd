"""
支付对账异常分类

每个异常携带稳定的 error_type（对外可见的机器可读错误码）与 PaymentCode，
对外响应只暴露这两项，原始异常细节仅记录在服务端日志中。
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class SignatureInvalidException(BusinessException):
    """签名校验失败"""
    def __init__(self):
        super().__init__(
            code=PaymentCode.SIGNATURE_INVALID,
            message="Webhook signature verification failed",
            error_type="SIGNATURE_INVALID",
        )


class TimestampExpiredException(BusinessException):
    """通知超出新鲜度窗口（疑似重放）"""
    def __init__(self):
        super().__init__(
            code=PaymentCode.TIMESTAMP_EXPIRED,
            message="Webhook notification is outside the freshness window",
            error_type="TIMESTAMP_EXPIRED",
        )


class MalformedPayloadException(BusinessException):
    """载荷无法解析或不符合约定结构"""
    def __init__(self, reason: str = "Malformed webhook payload", *, field: Optional[str] = None):
        super().__init__(
            code=PaymentCode.MALFORMED_PAYLOAD,
            message=reason,
            error_type="MALFORMED_PAYLOAD",
            field=field,
        )


class IpNotAllowedException(BusinessException):
    """来源 IP 不在白名单"""
    def __init__(self):
        super().__init__(
            code=PaymentCode.IP_NOT_ALLOWED,
            message="Webhook sender is not allowed",
            error_type="IP_NOT_ALLOWED",
        )


class RateLimitedException(BusinessException):
    """发送方在当前窗口内请求过多"""
    retryable = True

    def __init__(self, retry_after: int = 60):
        super().__init__(
            code=PaymentCode.RATE_LIMITED,
            message="Too many webhook requests",
            error_type="RATE_LIMITED",
        )
        self.retry_after = retry_after


class ProviderUnreachableException(BusinessException):
    """支付渠道暂时不可达（可重试）"""
    retryable = True

    def __init__(self, provider: str, *, reason: Optional[str] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_UNREACHABLE,
            message="Payment provider is temporarily unreachable",
            error_type="PROVIDER_UNREACHABLE",
            details={"provider": provider},
        )
        self.reason = reason


class ProviderRejectedException(BusinessException):
    """支付渠道拒绝请求（终态，不重试）"""
    retryable = False

    def __init__(
        self,
        provider: str,
        *,
        reason: Optional[str] = None,
        code: int = PaymentCode.PROVIDER_REJECTED,
        error_type: str = "PROVIDER_REJECTED",
        message: str = "Payment provider rejected the request",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details={"provider": provider},
        )
        self.reason = reason


class InvalidReferenceException(ProviderRejectedException):
    """支付渠道报告引用号不存在（终态）"""
    def __init__(self, provider: str, reference: str):
        super().__init__(
            provider,
            reason=f"unknown reference {reference}",
            code=PaymentCode.INVALID_REFERENCE,
            error_type="INVALID_REFERENCE",
            message="Payment reference is not known to the provider",
        )
        self.reference = reference


class BookingNotFoundException(BusinessException):
    """预订不存在"""
    def __init__(self, booking_id: str):
        super().__init__(
            code=PaymentCode.BOOKING_NOT_FOUND,
            message="Booking not found",
            error_type="BOOKING_NOT_FOUND",
            details={"booking_id": booking_id},
        )


class TransitionConflictException(BusinessException):
    """状态迁移不被状态机允许（已记录，未应用）"""
    def __init__(self, booking_id: str, current: str, target: str, reference: str):
        super().__init__(
            code=PaymentCode.TRANSITION_CONFLICT,
            message=f"Payment transition {current} -> {target} is not allowed",
            error_type="TRANSITION_CONFLICT",
            details={"booking_id": booking_id, "current": current, "target": target, "reference": reference},
        )


class ConcurrentUpdateException(BusinessException):
    """比较并交换写入失败：预订支付状态已被其他对账修改"""
    def __init__(self, booking_id: str):
        super().__init__(
            code=PaymentCode.CONCURRENT_UPDATE,
            message="Booking payment state was modified concurrently",
            error_type="CONCURRENT_UPDATE",
            details={"booking_id": booking_id},
        )


class BookingLockTimeoutException(BusinessException):
    """获取预订锁超时"""
    retryable = True

    def __init__(self, booking_id: str):
        super().__init__(
            code=PaymentCode.LOCK_TIMEOUT,
            message="Booking is busy, retry later",
            error_type="LOCK_TIMEOUT",
            details={"booking_id": booking_id},
        )
