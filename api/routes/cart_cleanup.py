"""
过期购物车清理接口

供定时任务（Bearer cart.cleanup_secret）或管理员手动触发。
全部规则成功返回 200；部分规则失败但有删除返回 207；失败且没有任何删除返回 500。
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from starlette import status as http_status

from api.dependencies import get_cart_cleanup_service, require_cleanup_caller
from application.dtos.carts import CartCleanupResponseDTO, CartCleanupResultDTO
from application.services.cart_cleanup import CartCleanupOptions, CartCleanupService
from core.config import settings
from core.logging_config import get_logger


router = APIRouter(prefix="/admin/carts", tags=["Carts"])
logger = get_logger(__name__)


def _options(dry_run: bool) -> CartCleanupOptions:
    cfg = settings.cart
    return CartCleanupOptions(
        guest_age_days=cfg.guest_max_age_days,
        empty_age_days=cfg.empty_max_age_days,
        archived_age_days=cfg.archived_max_age_days,
        batch_size=cfg.cleanup_batch_size,
        sleep_ms=cfg.cleanup_sleep_ms,
        max_delete=cfg.cleanup_max_delete,
        dry_run=dry_run,
    )


@router.post("/cleanup", response_model=CartCleanupResponseDTO)
async def cleanup_carts(
    dry_run: bool = Query(False, alias="dryRun"),
    caller: str = Depends(require_cleanup_caller),
    service: CartCleanupService = Depends(get_cart_cleanup_service),
):
    """删除过期访客购物车、空购物车以及失效商品行"""
    logger.info("cart_cleanup_requested", caller=caller, dry_run=dry_run)
    result = await service.run(_options(dry_run))

    if not result.had_errors:
        status_code = http_status.HTTP_200_OK
    elif result.total_deleted > 0:
        status_code = http_status.HTTP_207_MULTI_STATUS
    else:
        status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR

    body = CartCleanupResponseDTO(ok=not result.had_errors, result=CartCleanupResultDTO.from_result(result))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))
