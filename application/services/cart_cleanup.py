"""
过期购物车清理

每个设备都会留下一个 ``anon:<device>`` 购物车，登录合并之外没有别的路径删除它们。
清理按规则分批执行：

1. 访客购物车：updated_at 早于 guest_age_days
2. 空购物车：updated_at 早于 empty_age_days（可关闭）
3. 失效商品行：updated_at 早于 archived_age_days 的购物车里，移除已下架或不存在的商品行；
   移除后为空的购物车直接删除（可关闭）

单条规则失败会记录并继续执行其余规则。max_delete 是整次运行删除购物车数量的上限。
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from core.logging_config import get_logger
from domain.cart.repository import StaleCartRule
from domain.common.exceptions import DomainValidationException
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

_MAX_ZERO_PROGRESS_BATCHES = 3


@dataclass(frozen=True)
class CartCleanupOptions:
    guest_age_days: float = 30
    empty_age_days: Optional[int] = 14
    archived_age_days: Optional[int] = 90
    batch_size: int = 250
    sleep_ms: int = 0
    max_delete: Optional[int] = None
    dry_run: bool = False

    def __post_init__(self):
        if self.guest_age_days <= 0:
            raise DomainValidationException("guest_age_days must be positive", field="guest_age_days")
        for name in ("empty_age_days", "archived_age_days", "max_delete"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise DomainValidationException(f"{name} must be positive when provided", field=name)
        if self.batch_size <= 0:
            raise DomainValidationException("batch_size must be positive", field="batch_size")
        if self.sleep_ms < 0:
            raise DomainValidationException("sleep_ms must not be negative", field="sleep_ms")


@dataclass
class CartCleanupRuleResult:
    rule: str
    description: str
    matched: int = 0
    deleted: int = 0
    pruned_lines: int = 0
    error_count: int = 0


@dataclass
class CartCleanupResult:
    dry_run: bool
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[CartCleanupRuleResult] = field(default_factory=list)

    @property
    def total_matched(self) -> int:
        return sum(r.matched for r in self.results)

    @property
    def total_deleted(self) -> int:
        return sum(r.deleted for r in self.results)

    @property
    def had_errors(self) -> bool:
        return any(r.error_count for r in self.results)


class CartCleanupService:
    """按规则分批清理过期购物车"""

    ARCHIVED_LINES = "archived_lines"

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def run(
        self,
        options: CartCleanupOptions,
        *,
        now: Optional[datetime] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> CartCleanupResult:
        now = now or datetime.now(timezone.utc)
        result = CartCleanupResult(dry_run=options.dry_run, started_at=now)
        logger.info("cart_cleanup_started", dry_run=options.dry_run, max_delete=options.max_delete)

        rules = [(StaleCartRule.GUEST, options.guest_age_days)]
        if options.empty_age_days:
            rules.append((StaleCartRule.EMPTY, options.empty_age_days))

        for rule, days in rules:
            outcome = CartCleanupRuleResult(rule=rule.value, description=f"{rule.value} carts older than {days}d")
            try:
                await self._delete_stale(rule, now - timedelta(days=days), options, result, outcome, stop)
            except Exception:
                outcome.error_count += 1
                logger.exception("cart_cleanup_rule_failed", rule=rule.value)
            result.results.append(outcome)

        if options.archived_age_days:
            days = options.archived_age_days
            outcome = CartCleanupRuleResult(
                rule=self.ARCHIVED_LINES,
                description=f"unavailable product lines in carts older than {days}d",
            )
            try:
                await self._prune_unavailable_lines(now - timedelta(days=days), options, result, outcome, stop)
            except Exception:
                outcome.error_count += 1
                logger.exception("cart_cleanup_rule_failed", rule=self.ARCHIVED_LINES)
            result.results.append(outcome)

        result.finished_at = datetime.now(timezone.utc)
        logger.info(
            "cart_cleanup_finished",
            dry_run=options.dry_run,
            total_matched=result.total_matched,
            total_deleted=result.total_deleted,
            had_errors=result.had_errors,
        )
        return result

    @staticmethod
    def _budget(options: CartCleanupOptions, result: CartCleanupResult, outcome: CartCleanupRuleResult) -> int:
        if options.max_delete is None:
            return options.batch_size
        # outcome 尚未加入 result.results
        left = options.max_delete - result.total_deleted - outcome.deleted
        return max(0, min(options.batch_size, left))

    async def _delete_stale(
        self,
        rule: StaleCartRule,
        cutoff: datetime,
        options: CartCleanupOptions,
        result: CartCleanupResult,
        outcome: CartCleanupRuleResult,
        stop: Optional[asyncio.Event],
    ) -> None:
        async with self._uow_factory(readonly=True) as uow:
            outcome.matched = await uow.cart_repository.count_stale(rule, cutoff)
        if options.dry_run or outcome.matched == 0:
            return

        zero_progress = 0
        while True:
            if stop is not None and stop.is_set():
                logger.warning("cart_cleanup_stopped", rule=rule.value, deleted=outcome.deleted)
                return
            limit = self._budget(options, result, outcome)
            if limit <= 0:
                logger.warning("cart_cleanup_max_delete_reached", rule=rule.value, max_delete=options.max_delete)
                return

            async with self._uow_factory() as uow:
                scopes = await uow.cart_repository.list_stale_scopes(rule, cutoff, limit)
                if not scopes:
                    return
                deleted = await uow.cart_repository.delete_stale(rule, cutoff, scopes)

            outcome.deleted += deleted
            logger.info("cart_cleanup_batch", rule=rule.value, batch=len(scopes), deleted=deleted)
            if deleted == 0:
                zero_progress += 1
                if zero_progress >= _MAX_ZERO_PROGRESS_BATCHES:
                    logger.error("cart_cleanup_no_progress", rule=rule.value, deleted=outcome.deleted)
                    return
            else:
                zero_progress = 0
            if options.sleep_ms:
                await asyncio.sleep(options.sleep_ms / 1000)

    async def _prune_unavailable_lines(
        self,
        cutoff: datetime,
        options: CartCleanupOptions,
        result: CartCleanupResult,
        outcome: CartCleanupRuleResult,
        stop: Optional[asyncio.Event],
    ) -> None:
        after_key: Optional[str] = None
        while True:
            if stop is not None and stop.is_set():
                logger.warning("cart_cleanup_stopped", rule=self.ARCHIVED_LINES, deleted=outcome.deleted)
                return
            if not options.dry_run and self._budget(options, result, outcome) <= 0:
                logger.warning(
                    "cart_cleanup_max_delete_reached", rule=self.ARCHIVED_LINES, max_delete=options.max_delete
                )
                return

            async with self._uow_factory(readonly=options.dry_run) as uow:
                carts = await uow.cart_repository.list_updated_before(
                    cutoff, after_key=after_key, limit=options.batch_size
                )
                if not carts:
                    return
                after_key = carts[-1].key
                unavailable = await uow.product_repository.list_unavailable(
                    {pid for cart in carts for pid in cart.lines}
                )
                for cart in carts:
                    dead = [pid for pid in cart.lines if pid in unavailable]
                    if not dead:
                        continue
                    outcome.matched += 1
                    if options.dry_run:
                        continue
                    for pid in dead:
                        cart.remove(pid)
                    outcome.pruned_lines += len(dead)
                    if cart.is_empty:
                        await uow.cart_repository.delete(cart.scope)
                        outcome.deleted += 1
                    else:
                        await uow.cart_repository.save(cart)

            if options.sleep_ms:
                await asyncio.sleep(options.sleep_ms / 1000)
