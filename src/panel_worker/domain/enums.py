"""
Доменные перечисления (enum).

Используются во всей системе:
- типы задач очереди
- статусы и виды продуктов заказа
- исход обработки задачи
"""

from __future__ import annotations

import enum


class TaskType(str, enum.Enum):
    """
    Тип задачи (поле "type" в записи очереди).
    """

    email = "email"
    order = "order"


class OrderStatus(str, enum.Enum):
    """
    Статус заказа.
    """

    pending_payment = "pending_payment"
    pending_activation = "pending_activation"
    activated = "activated"


class ProductType(str, enum.Enum):
    """
    Вид продукта в заказе.
    """

    tabp = "tabp"  # смена тарифа: трафик + уровень + срок
    bandwidth = "bandwidth"  # докупка трафика
    time = "time"  # продление уровня
    topup = "topup"  # пополнение баланса


class JobStatus(str, enum.Enum):
    """
    Исход обработчика задачи.
    """

    ok = "ok"
    retry = "retry"
    drop = "drop"
