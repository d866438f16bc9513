"""
Обработчик задач "order": активация оплаченного заказа.

Алгоритм:
- нет order_id / заказа / пользователя / читаемого product_content -> retry
  (задача могла прийти раньше коммита строки заказа)
- статус не pending_* -> ok без изменений (повторная доставка безопасна)
- ветка по product_type: tabp | bandwidth | time | topup | прочее
- изменения пользователя, аудит баланса и статус заказа - одна транзакция

Важно:
- все проверки полей выполняются до первой мутации
- time-заказ против другого, более высокого уровня пользователя пропускается (drop),
  заказ остаётся в pending для ручного разбора
"""

from __future__ import annotations

import json
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import timedelta
from typing import Any

from panel_worker.common.errors import ValidationError
from panel_worker.common.logging import get_project_logger
from panel_worker.common.time import unix_now, utc_now_naive
from panel_worker.domain.enums import OrderStatus, ProductType
from panel_worker.queue.tasks import Task
from panel_worker.storage.models import Order, User
from panel_worker.storage.repositories import ActivationStores

from .base import JobResult, drop_result, ok_result, retry_result

log = get_project_logger()

_PENDING = {OrderStatus.pending_payment.value, OrderStatus.pending_activation.value}
_GB = 1024**3

_TIER_FIELDS = ("class", "class_time", "node_group", "speed_limit", "ip_limit")
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    ProductType.tabp.value: ("bandwidth", *_TIER_FIELDS),
    ProductType.bandwidth.value: ("bandwidth",),
    ProductType.time.value: _TIER_FIELDS,
    ProductType.topup.value: ("amount",),
}


def gb_to_bytes(gb: Any) -> int:
    return int(float(gb) * _GB)


def parse_product_content(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        content = json.loads(raw)
    except ValueError:
        return None
    return content if isinstance(content, dict) else None


def _apply_tier_limits(user: User, content: dict[str, Any]) -> None:
    user.user_class = int(content["class"])
    user.node_group = int(content["node_group"])
    user.node_speedlimit = float(content["speed_limit"])
    user.node_iplimit = int(content["ip_limit"])


class OrderJob:
    def __init__(self, stores_factory: Callable[[], AbstractContextManager[ActivationStores]]) -> None:
        self.stores_factory = stores_factory
        self._appliers: dict[str, Callable[[ActivationStores, User, Order, dict], JobResult | None]] = {
            ProductType.tabp.value: self._apply_tabp,
            ProductType.bandwidth.value: self._apply_bandwidth,
            ProductType.time.value: self._apply_time,
            ProductType.topup.value: self._apply_topup,
        }

    def handle(self, task: Task) -> JobResult:
        data = task.data if isinstance(task.data, dict) else {}
        raw_id = data.get("order_id")
        if raw_id is None:
            return retry_result("order_id_missing")
        try:
            order_id = int(raw_id)
        except (TypeError, ValueError):
            log.warning("order_id_invalid", extra={"payload": {"task_id": task.id, "order_id": str(raw_id)[:50]}})
            return drop_result("order_id_invalid")

        try:
            with self.stores_factory() as stores:
                return self._activate(stores, order_id)
        except ValidationError as e:
            # исключение прошло через with: транзакция откатилась
            return retry_result(f"product_content_invalid:{e.message}")

    # =========================================================================
    # ACTIVATION
    # =========================================================================
    def _activate(self, stores: ActivationStores, order_id: int) -> JobResult:
        order = stores.orders.get_for_update(order_id)
        if order is None:
            return retry_result(f"order_not_found:{order_id}")

        if order.status not in _PENDING:
            log.info(
                "order_already_processed",
                extra={"payload": {"order_id": order_id, "status": order.status}},
            )
            return ok_result("already_processed")

        user = stores.users.get(order.user_id)
        if user is None:
            return retry_result(f"user_not_found:{order.user_id}")

        content = parse_product_content(order.product_content)
        if content is None:
            return retry_result(f"product_content_unparseable:{order_id}")

        applier = self._appliers.get(order.product_type)
        if applier is None:
            # Неизвестный продукт: аккаунт не трогаем, только закрываем заказ
            self._mark_activated(stores, order)
            log.info(
                "order_activated",
                extra={"payload": {"order_id": order_id, "product_type": order.product_type}},
            )
            return ok_result("no_account_change")

        missing = [f for f in REQUIRED_FIELDS[order.product_type] if content.get(f) is None]
        if missing:
            return retry_result(f"product_content_missing:{','.join(missing)}")

        try:
            skipped = applier(stores, user, order, content)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e)[:200], {"order_id": order_id}) from e
        if skipped is not None:
            return skipped

        stores.users.save(user)
        self._mark_activated(stores, order)
        log.info(
            "order_activated",
            extra={
                "payload": {
                    "order_id": order_id,
                    "user_id": user.id,
                    "product_type": order.product_type,
                }
            },
        )
        return ok_result()

    def _mark_activated(self, stores: ActivationStores, order: Order) -> None:
        order.status = OrderStatus.activated.value
        order.update_time = unix_now()
        stores.orders.save(order)

    # =========================================================================
    # PRODUCT KINDS
    # =========================================================================
    def _apply_tabp(self, stores: ActivationStores, user: User, order: Order, content: dict) -> None:
        transfer = gb_to_bytes(content["bandwidth"])
        expire = utc_now_naive() + timedelta(days=float(content["class_time"]))
        _apply_tier_limits(user, content)
        user.u = 0
        user.d = 0
        user.transfer_today = 0
        user.transfer_enable = transfer
        user.class_expire = expire

    def _apply_bandwidth(self, stores: ActivationStores, user: User, order: Order, content: dict) -> None:
        user.transfer_enable = int(user.transfer_enable or 0) + gb_to_bytes(content["bandwidth"])

    def _apply_time(
        self, stores: ActivationStores, user: User, order: Order, content: dict
    ) -> JobResult | None:
        order_class = int(content["class"])
        current = int(user.user_class or 0)
        if current > order_class:
            log.warning(
                "order_time_tier_mismatch",
                extra={
                    "payload": {
                        "order_id": order.id,
                        "user_id": user.id,
                        "user_class": current,
                        "order_class": order_class,
                    }
                },
            )
            return drop_result("tier_mismatch")

        days = timedelta(days=float(content["class_time"]))
        base = user.class_expire or utc_now_naive()
        _apply_tier_limits(user, content)
        user.class_expire = base + days
        return None

    def _apply_topup(self, stores: ActivationStores, user: User, order: Order, content: dict) -> None:
        amount = float(content["amount"])
        before = float(user.money or 0.0)
        user.money = round(before + amount, 2)
        stores.money_logs.add(
            user_id=user.id,
            before=before,
            after=user.money,
            amount=amount,
            remark=f"Top-up order #{order.id}",
        )
