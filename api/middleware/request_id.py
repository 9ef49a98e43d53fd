"""
Request ID 中间件
用于生成或透传追踪ID，并绑定到 structlog 上下文
"""
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import structlog


_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件
    
    功能：
    1. 从请求头获取或生成新的request_id
    2. 将request_id绑定到structlog上下文，供日志系统使用
    3. 在响应头中返回request_id
    """
    
    HEADER_NAME = "X-Request-ID"
    
    async def dispatch(self, request: Request, call_next):
        # 透传上游request_id；格式不合法（可能用于日志注入）时重新生成
        request_id = request.headers.get(self.HEADER_NAME)
        if not request_id or not _REQUEST_ID_RE.match(request_id):
            request_id = str(uuid.uuid4())
        
        # 获取客户端IP
        client_ip = self._get_client_ip(request)
        
        # 设置到request.state以便在应用内部访问
        request.state.request_id = request_id
        request.state.client_ip = client_ip
        
        # 绑定到structlog上下文
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )
        
        # 处理请求
        response = await call_next(request)
        
        # 在响应头中添加request_id
        response.headers[self.HEADER_NAME] = request_id
        
        return response
    
    def _get_client_ip(self, request: Request) -> str:
        """
        获取客户端真实IP
        
        Args:
            request: FastAPI请求对象
            
        Returns:
            客户端IP地址
        """
        # 尝试从X-Forwarded-For获取（考虑代理的情况）
        x_forwarded_for = request.headers.get("X-Forwarded-For")
        if x_forwarded_for:
            # 取第一个IP（原始客户端IP）
            client_ip = x_forwarded_for.split(",")[0].strip()
        else:
            # 尝试从X-Real-IP获取
            client_ip = request.headers.get("X-Real-IP")
            if not client_ip:
                # 最后从client获取
                client_ip = request.client.host if request.client else "unknown"
        
        return client_ip

