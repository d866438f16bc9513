"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только чтение по id, сохранение и аудит-записи
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from panel_worker.common.time import unix_now

from .db import db_session
from .models import Order, User, UserMoneyLog


# =============================================================================
# ORDER REPOSITORY
# =============================================================================
class OrderRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, order_id: int) -> Order | None:
        return self.session.get(Order, order_id)

    def get_for_update(self, order_id: int) -> Order | None:
        """
        Чтение с блокировкой строки до конца транзакции (SELECT ... FOR UPDATE).
        """
        stmt = select(Order).where(Order.id == order_id).with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def save(self, order: Order) -> None:
        self.session.add(order)


# =============================================================================
# USER REPOSITORY
# =============================================================================
class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def save(self, user: User) -> None:
        self.session.add(user)


# =============================================================================
# MONEY LOG REPOSITORY
# =============================================================================
class MoneyLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(
        self,
        *,
        user_id: int,
        before: float,
        after: float,
        amount: float,
        remark: str,
    ) -> UserMoneyLog:
        entry = UserMoneyLog(
            user_id=user_id,
            before=before,
            after=after,
            amount=amount,
            remark=remark,
            create_time=unix_now(),
        )
        self.session.add(entry)
        return entry


# =============================================================================
# UNIT OF WORK ДЛЯ АКТИВАЦИИ ЗАКАЗА
# =============================================================================
@dataclass
class ActivationStores:
    orders: OrderRepository
    users: UserRepository
    money_logs: MoneyLogRepository


@contextmanager
def sql_activation_stores() -> Iterator[ActivationStores]:
    """
    Все три репозитория на одной сессии: изменения пользователя, аудит баланса
    и смена статуса заказа коммитятся одной транзакцией.
    """
    with db_session() as session:
        yield ActivationStores(
            orders=OrderRepository(session),
            users=UserRepository(session),
            money_logs=MoneyLogRepository(session),
        )
