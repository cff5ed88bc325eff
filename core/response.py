"""
响应格式

- 购物车等常规接口：统一信封 {code, message, data, error}
- 管理端退款接口：扁平结构，成功为 {ok: true, ...}，失败为 {error, code, orderId}
"""
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_serializer

from shared.codes import BusinessCode


T = TypeVar("T")


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """UTC ISO8601，Z 结尾"""
        ts = timestamp.replace(tzinfo=timezone.utc) if timestamp.tzinfo is None else timestamp.astimezone(timezone.utc)
        return ts.isoformat().replace("+00:00", "Z")


class Response(BaseModel, Generic[T]):
    """统一响应信封"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class RefundErrorBody(BaseModel):
    """退款接口失败体"""
    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str
    order_id: Optional[str] = Field(default=None, alias="orderId")


def success_response(data: Any = None, message: str = "Success", code: int = BusinessCode.SUCCESS) -> Response:
    return Response(code=code, message=message, data=data, error=None)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    创建错误信封

    Args:
        code: 业务状态码（BusinessCode）
        message: 错误消息
        error_type: 异常类名，前端据此分支
        details: 附加上下文
        field: 校验失败的字段
        request_id: 追踪ID
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )


def refund_error_response(status_code: int, message: str, code: str, order_id: Optional[str]) -> JSONResponse:
    body = RefundErrorBody(error=message, code=code, order_id=order_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))
