"""Order repository backed by SQLAlchemy."""

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, create_engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from loguru import logger

from .errors import OrderNotFoundError, ProcessingError, ValidationError
from .formats import FormatRegistry
from .models import CartItem, Order, OrderStatus

ORDER_NUMBER_ATTEMPTS = 5


def _check_status(status: str) -> None:
    try:
        OrderStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}",
                              details={'allowed': [s.value for s in OrderStatus]})


class Base(DeclarativeBase):
    """Base declarative class."""


class OrderModel(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    client: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_method: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=OrderStatus.PENDING.value)
    files_copied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


def build_session_factory(database_url: str) -> Callable[[], Session]:
    """Create the engine, ensure tables exist and return a session factory."""
    engine_kwargs: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **engine_kwargs)
    Base.metadata.create_all(engine)
    logger.info(f"Order database ready: {engine.url.render_as_string(hide_password=True)}")
    return sessionmaker(bind=engine, expire_on_commit=False)


class OrderRepository:
    """Provide access to kiosk orders stored in the database."""

    def __init__(self, session_factory: Callable[[], Session],
                 registry: Optional[FormatRegistry] = None) -> None:
        self._session_factory = session_factory
        self._registry = registry

    def create_order(
        self,
        *,
        client: Dict[str, Any],
        items: List[Dict[str, Any]],
        total: float,
        payment_method: Optional[str] = None,
        status: str = OrderStatus.PENDING.value,
    ) -> Order:
        # Reject unknown statuses and malformed carts before touching the database
        _check_status(status)
        for item in items:
            CartItem.from_dict(item)
        items = [self._apply_format_billing(item) for item in items]

        # Concurrent checkouts can pick the same next number; the unique
        # constraint rejects the loser, which takes the following one
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                with self._session_factory() as session, session.begin():
                    row = OrderModel(
                        id=str(uuid.uuid4()),
                        order_number=self._next_order_number(session),
                        client=client,
                        items=items,
                        total=total,
                        payment_method=payment_method,
                        status=status,
                        files_copied=False,
                        created_at=datetime.utcnow(),
                    )
                    session.add(row)
                break
            except IntegrityError as e:
                logger.warning(f"Order number collision (attempt {attempt}/{ORDER_NUMBER_ATTEMPTS}): {e.orig}")
        else:
            raise ProcessingError(
                "Could not allocate an order number",
                details={'attempts': ORDER_NUMBER_ATTEMPTS},
                suggestions=["Retry the checkout"])

        logger.info(f"Created order {row.id} (#{row.order_number}) with {len(items)} items")
        return self._to_domain(row)

    @staticmethod
    def _next_order_number(session: Session) -> int:
        return (session.scalar(select(func.max(OrderModel.order_number))) or 0) + 1

    def _apply_format_billing(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Pair billing comes from the format registry, not from the submitted cart."""
        if self._registry is None:
            return item
        fmt = self._registry.get(str(item['size']['id']))
        size = dict(item['size'], requiresEven=bool(fmt and fmt.pair_billing))
        return dict(item, size=size)

    def get_order(self, order_id: str) -> Order:
        with self._session_factory() as session:
            row = session.get(OrderModel, order_id)
            if row is None:
                raise OrderNotFoundError(order_id)
            return self._to_domain(row)

    def list_orders(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Order]:
        with self._session_factory() as session:
            stmt = select(OrderModel).order_by(OrderModel.created_at.desc())
            if status:
                stmt = stmt.where(OrderModel.status == status)
            rows = session.scalars(stmt.limit(limit).offset(offset)).all()
            return [self._to_domain(row) for row in rows]

    def update_status(self, order_id: str, status: str) -> Order:
        """Set the order status; entering 'paid' stamps paid_at."""
        _check_status(status)
        with self._session_factory() as session, session.begin():
            row = session.get(OrderModel, order_id)
            if row is None:
                raise OrderNotFoundError(order_id)
            row.status = status
            if status == OrderStatus.PAID.value and row.paid_at is None:
                row.paid_at = datetime.utcnow()
        logger.info(f"Order {order_id} status -> {status}")
        return self._to_domain(row)

    def mark_files_copied(self, order_id: str) -> bool:
        """
        Atomically flip files_copied from false to true.

        Returns False when the flag was already set (or the order is gone).
        """
        with self._session_factory() as session, session.begin():
            result = session.execute(
                update(OrderModel)
                .where(OrderModel.id == order_id, OrderModel.files_copied.is_(False))
                .values(files_copied=True, dispatched_at=datetime.utcnow())
            )
            return result.rowcount == 1

    @staticmethod
    def _to_domain(row: OrderModel) -> Order:
        return Order(
            id=row.id,
            order_number=row.order_number,
            client=dict(row.client or {}),
            items=[CartItem.from_dict(item) for item in (row.items or [])],
            total=row.total,
            payment_method=row.payment_method,
            status=OrderStatus(row.status),
            files_copied=bool(row.files_copied),
            created_at=row.created_at,
            paid_at=row.paid_at,
            dispatched_at=row.dispatched_at,
        )
