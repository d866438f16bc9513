"""
ORM-модели базы данных.

Назначение:
- минимальные отображения таблиц панели, которые меняет воркер заказов
- схемой владеет веб-часть; здесь только колонки, нужные обработчикам
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# USER
# =============================================================================
class User(Base):
    """
    Пользователь: счётчики трафика, уровень, срок уровня, баланс.
    """

    __tablename__ = "user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    # трафик в байтах
    u: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    d: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    transfer_today: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    transfer_enable: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    user_class: Mapped[int] = mapped_column("class", Integer, default=0, nullable=False)
    class_expire: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    node_group: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    node_speedlimit: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    node_iplimit: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    money: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


# =============================================================================
# ORDER
# =============================================================================
class Order(Base):
    """
    Заказ. product_content - JSON-строка с параметрами продукта.
    """

    __tablename__ = "order"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    product_type: Mapped[str] = mapped_column(String(32), nullable=False)
    product_content: Mapped[str] = mapped_column(Text, default="{}", nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False)
    create_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    update_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# =============================================================================
# MONEY LOG
# =============================================================================
class UserMoneyLog(Base):
    """
    Аудит изменений баланса.
    """

    __tablename__ = "user_money_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    before: Mapped[float] = mapped_column(Float, nullable=False)
    after: Mapped[float] = mapped_column(Float, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    remark: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    create_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
