"""
请求日志中间件

每个请求记录 request_started / request_completed 两条日志。
退款接口会额外绑定 order_id，方便按订单串起一次退款的所有日志。
"""
import json
import time
from typing import Any, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

# 请求体中需要脱敏的字段（小写比较）
MASKED_FIELDS = {"idempotencykey", "idempotency_key", "notes", "token", "password", "secret"}


def mask_body(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: "***" if k.lower() in MASKED_FIELDS else mask_body(v) for k, v in data.items()}
    if isinstance(data, list):
        return [mask_body(v) for v in data]
    return data


class LoggingMiddleware(BaseHTTPMiddleware):
    """记录请求与响应，附带耗时和 X-Process-Time 响应头"""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_body = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT
        self.max_body_bytes = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        body = await self._read_json_body(request)
        order_id = self._order_id(request, body)
        if order_id:
            structlog.contextvars.bind_contextvars(order_id=order_id)

        info = {
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "has_session": bool(request.headers.get("authorization") or request.cookies.get("payload-token")),
        }
        if body is not None and self.log_body and settings.DEBUG:
            info["body"] = mask_body(body)

        logger.info("request_started", **info)
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error_type=type(exc).__name__,
                exc_info=True,
                **info,
            )
            raise

        duration = time.perf_counter() - started
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        self._log_response(response, duration, info)
        return response

    async def _read_json_body(self, request: Request) -> Optional[Any]:
        if request.method not in ("POST", "PUT", "PATCH"):
            return None
        if "application/json" not in request.headers.get("content-type", "").lower():
            return None
        raw = await request.body()
        if not raw or len(raw) > self.max_body_bytes:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    @staticmethod
    def _order_id(request: Request, body: Any) -> Optional[str]:
        if "/refunds" not in request.url.path:
            return None
        if isinstance(body, dict) and isinstance(body.get("orderId"), str):
            return body["orderId"]
        return request.query_params.get("orderId")

    @staticmethod
    def _log_response(response: Response, duration: float, info: dict) -> None:
        status_code = response.status_code
        data = {"status_code": status_code, "duration": round(duration, 4), **info}
        if status_code < 400:
            logger.info("request_completed", **data)
        elif status_code < 500:
            logger.warning("request_client_error", **data)
        else:
            logger.error("request_server_error", **data)
