from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import uuid4

from packages.shared.clock import utcnow
from packages.shared.pricing import money
from packages.shared.schemas.order_status import (
    CANCELLABLE_STATUSES,
    OrderStatusV1,
    StatusHistoryEntryV1,
    can_transition,
)
from packages.shared.schemas.pricing import CartLineV1, DeliveryOptionV1, DiscountKindV1
from services.api.app.db.database import db_session
from services.api.app.db.models import (
    Address,
    CartItem,
    CartSelection,
    Coupon,
    DeliveryOption,
    Order,
    OrderStatusHistory,
    Product,
    User,
)
from services.api.app.errors import (
    CouponInvalidError,
    InvalidStatusTransitionError,
    NotFoundError,
    OutOfStockError,
    PersistenceError,
)
from services.api.app.models.address import AddressCreate, AddressOut
from services.api.app.models.order import OrderDetail, OrderItemSnapshot
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PROCESSING_REWARD_POINTS = 50
ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class ProductRecord:
    id: str
    name: str
    price: Decimal
    in_stock: bool
    stock_quantity: int


@dataclass(frozen=True, slots=True)
class CouponRecord:
    code: str
    kind: DiscountKindV1
    value: Decimal
    max_discount: Decimal | None
    min_order_amount: Decimal | None
    description: str | None
    is_active: bool
    starts_at: datetime | None
    expires_at: datetime | None
    usage_limit: int | None
    per_user_limit: int | None
    times_used: int


@dataclass(frozen=True, slots=True)
class CartSelectionRecord:
    coupon_code: str | None = None
    delivery_option_id: str | None = None
    shipping_address_id: str | None = None
    payment_method: str | None = None


@dataclass(slots=True)
class NewOrder:
    """A fully priced, validated order waiting to be committed."""

    customer_name: str
    email: str
    phone: str
    items: list[OrderItemSnapshot]
    subtotal: Decimal
    discount_amount: Decimal
    delivery_charge: Decimal
    payment_surcharge: Decimal
    total: Decimal
    delivery_option_id: str
    delivery_address: str
    payment_method: str
    user_id: str | None = None
    coupon_code: str | None = None
    shipping_address_id: str | None = None
    occasion: str | None = None
    requirements: str | None = None
    delivery_date: datetime | None = None
    estimated_delivery_date: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


class Store(Protocol):
    def get_products(self, product_ids: list[str]) -> dict[str, ProductRecord]: ...

    def get_coupon(self, code: str) -> CouponRecord | None: ...

    def count_coupon_uses(self, code: str, owner_id: str) -> int: ...

    def list_delivery_options(self, *, active_only: bool = True) -> list[DeliveryOptionV1]: ...

    def get_delivery_option(self, option_id: str) -> DeliveryOptionV1 | None: ...

    def get_address(self, address_id: str) -> AddressOut | None: ...

    def list_addresses(self, owner_id: str) -> list[AddressOut]: ...

    def create_address(self, owner_id: str, address: AddressCreate) -> AddressOut: ...

    def set_default_address(self, owner_id: str, address_id: str) -> AddressOut: ...

    def get_cart_lines(self, user_id: str) -> list[CartLineV1]: ...

    def add_cart_item(self, user_id: str, product_id: str, quantity: int) -> None: ...

    def set_cart_quantity(self, user_id: str, product_id: str, quantity: int) -> None: ...

    def clear_cart(self, user_id: str) -> None: ...

    def get_cart_selection(self, user_id: str) -> CartSelectionRecord: ...

    def update_cart_selection(self, user_id: str, changes: dict[str, Any]) -> CartSelectionRecord: ...

    def create_order(self, new_order: NewOrder) -> OrderDetail: ...

    def get_order(self, order_id: str) -> OrderDetail | None: ...

    def list_user_orders(self, user_id: str) -> list[OrderDetail]: ...

    def list_advanceable_orders(
        self, cutoff: datetime, status: OrderStatusV1
    ) -> list[OrderDetail]: ...

    def advance_order_status(
        self,
        order_id: str,
        expected: OrderStatusV1,
        target: OrderStatusV1,
        *,
        note: str | None = None,
        now: datetime | None = None,
    ) -> OrderDetail: ...

    def cancel_order(
        self, order_id: str, *, note: str | None = None, now: datetime | None = None
    ) -> OrderDetail: ...

    def get_status_history(self, order_id: str) -> list[StatusHistoryEntryV1]: ...


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _order_detail(order: Order) -> OrderDetail:
    return OrderDetail(
        id=order.id,
        order_number=order.order_number,
        status=OrderStatusV1(order.status),
        items=[OrderItemSnapshot.model_validate(i) for i in order.items_json or []],
        subtotal=money(order.subtotal),
        discount_amount=money(order.discount_amount),
        delivery_charge=money(order.delivery_charge),
        payment_surcharge=money(order.payment_surcharge),
        total=money(order.total),
        coupon_code=order.coupon_code,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        estimated_delivery_date=_iso(order.estimated_delivery_date),
        created_at=_iso(order.created_at) or "",
        updated_at=_iso(order.updated_at) or "",
        user_id=order.user_id,
        customer_name=order.customer_name,
        email=order.email,
        phone=order.phone,
        occasion=order.occasion,
        requirements=order.requirements,
        delivery_option_id=order.delivery_option_id,
        delivery_address=order.delivery_address,
        status_updated_at=_iso(order.status_updated_at) or "",
        points_awarded=order.points_awarded,
    )


def _address_out(address: Address) -> AddressOut:
    return AddressOut(
        id=address.id,
        owner_id=address.owner_id,
        full_name=address.full_name,
        phone=address.phone,
        line1=address.line1,
        line2=address.line2,
        city=address.city,
        state=address.state,
        postal_code=address.postal_code,
        country=address.country,
        is_default=address.is_default,
        created_at=_iso(address.created_at) or "",
    )


def _delivery_option(option: DeliveryOption) -> DeliveryOptionV1:
    return DeliveryOptionV1(
        id=option.id,
        name=option.name,
        description=option.description,
        estimated_days=option.estimated_days,
        price=money(option.price),
        is_active=option.is_active,
        sort_order=option.sort_order,
    )


def _coupon_record(coupon: Coupon) -> CouponRecord:
    return CouponRecord(
        code=coupon.code,
        kind=DiscountKindV1(coupon.kind),
        value=money(coupon.value),
        max_discount=money(coupon.max_discount) if coupon.max_discount is not None else None,
        min_order_amount=(
            money(coupon.min_order_amount) if coupon.min_order_amount is not None else None
        ),
        description=coupon.description,
        is_active=coupon.is_active,
        starts_at=coupon.starts_at,
        expires_at=coupon.expires_at,
        usage_limit=coupon.usage_limit,
        per_user_limit=coupon.per_user_limit,
        times_used=coupon.times_used,
    )


def order_number_prefix(now: datetime) -> str:
    return f"ORD-{now:%Y%m}-"


class SqlStore:
    """The one `Store` implementation, backed by SQLAlchemy.

    Each method runs in its own session. `create_order` is the only multi-entity write
    and commits order, history, stock, coupon usage and cart clearing together.
    """

    def __init__(self, session_factory: Callable[[], Session] = db_session) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except IntegrityError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("[STORE] Database error: %s", e)
            raise PersistenceError() from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Catalog and coupons

    def get_products(self, product_ids: list[str]) -> dict[str, ProductRecord]:
        if not product_ids:
            return {}
        with self._session() as db:
            rows = db.scalars(select(Product).where(Product.id.in_(product_ids))).all()
            return {
                p.id: ProductRecord(
                    id=p.id,
                    name=p.name,
                    price=money(p.price),
                    in_stock=p.in_stock,
                    stock_quantity=p.stock_quantity,
                )
                for p in rows
            }

    def get_coupon(self, code: str) -> CouponRecord | None:
        with self._session() as db:
            coupon = db.scalars(select(Coupon).where(Coupon.code == code.strip().upper())).first()
            return _coupon_record(coupon) if coupon is not None else None

    def count_coupon_uses(self, code: str, owner_id: str) -> int:
        with self._session() as db:
            return int(
                db.scalar(
                    select(func.count(Order.id)).where(
                        Order.coupon_code == code.strip().upper(),
                        Order.user_id == owner_id,
                        Order.status != OrderStatusV1.CANCELLED.value,
                    )
                )
                or 0
            )

    def list_delivery_options(self, *, active_only: bool = True) -> list[DeliveryOptionV1]:
        with self._session() as db:
            stmt = select(DeliveryOption).order_by(DeliveryOption.sort_order)
            if active_only:
                stmt = stmt.where(DeliveryOption.is_active.is_(True))
            return [_delivery_option(o) for o in db.scalars(stmt).all()]

    def get_delivery_option(self, option_id: str) -> DeliveryOptionV1 | None:
        with self._session() as db:
            option = db.get(DeliveryOption, option_id)
            return _delivery_option(option) if option is not None else None

    # Addresses

    def get_address(self, address_id: str) -> AddressOut | None:
        with self._session() as db:
            address = db.get(Address, address_id)
            return _address_out(address) if address is not None else None

    def list_addresses(self, owner_id: str) -> list[AddressOut]:
        with self._session() as db:
            rows = db.scalars(
                select(Address)
                .where(Address.owner_id == owner_id)
                .order_by(Address.is_default.desc(), Address.created_at.desc())
            ).all()
            return [_address_out(a) for a in rows]

    def create_address(self, owner_id: str, address: AddressCreate) -> AddressOut:
        with self._session() as db:
            now = utcnow()
            if address.is_default:
                db.execute(
                    update(Address)
                    .where(Address.owner_id == owner_id, Address.is_default.is_(True))
                    .values(is_default=False, updated_at=now)
                )
            row = Address(
                id=uuid4().hex,
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
                **address.model_dump(),
            )
            db.add(row)
            db.commit()
            return _address_out(row)

    def set_default_address(self, owner_id: str, address_id: str) -> AddressOut:
        with self._session() as db:
            row = db.get(Address, address_id)
            if row is None or row.owner_id != owner_id:
                raise NotFoundError("Address not found")

            now = utcnow()
            db.execute(
                update(Address)
                .where(Address.owner_id == owner_id, Address.is_default.is_(True))
                .values(is_default=False, updated_at=now)
            )
            row.is_default = True
            row.updated_at = now
            db.commit()
            return _address_out(row)

    # Authenticated carts

    def get_cart_lines(self, user_id: str) -> list[CartLineV1]:
        with self._session() as db:
            rows = db.execute(
                select(CartItem, Product)
                .join(Product, Product.id == CartItem.product_id)
                .where(CartItem.user_id == user_id)
                .order_by(CartItem.created_at)
            ).all()
            return [
                CartLineV1(
                    product_id=product.id,
                    name=product.name,
                    unit_price=money(product.price),
                    quantity=item.quantity,
                )
                for item, product in rows
            ]

    def add_cart_item(self, user_id: str, product_id: str, quantity: int) -> None:
        with self._session() as db:
            if db.get(Product, product_id) is None:
                raise NotFoundError(f"Product {product_id} not found")

            existing = db.scalars(
                select(CartItem).where(
                    CartItem.user_id == user_id, CartItem.product_id == product_id
                )
            ).first()
            if existing is not None:
                existing.quantity += quantity
            else:
                db.add(
                    CartItem(
                        id=uuid4().hex,
                        user_id=user_id,
                        product_id=product_id,
                        quantity=quantity,
                    )
                )
            db.commit()

    def set_cart_quantity(self, user_id: str, product_id: str, quantity: int) -> None:
        with self._session() as db:
            if quantity <= 0:
                db.execute(
                    delete(CartItem).where(
                        CartItem.user_id == user_id, CartItem.product_id == product_id
                    )
                )
            else:
                result = db.execute(
                    update(CartItem)
                    .where(CartItem.user_id == user_id, CartItem.product_id == product_id)
                    .values(quantity=quantity)
                )
                if result.rowcount == 0:
                    raise NotFoundError(f"Product {product_id} is not in the cart")
            db.commit()

    def clear_cart(self, user_id: str) -> None:
        with self._session() as db:
            db.execute(delete(CartItem).where(CartItem.user_id == user_id))
            db.execute(delete(CartSelection).where(CartSelection.user_id == user_id))
            db.commit()

    def get_cart_selection(self, user_id: str) -> CartSelectionRecord:
        with self._session() as db:
            row = db.get(CartSelection, user_id)
            if row is None:
                return CartSelectionRecord()
            return CartSelectionRecord(
                coupon_code=row.coupon_code,
                delivery_option_id=row.delivery_option_id,
                shipping_address_id=row.shipping_address_id,
                payment_method=row.payment_method,
            )

    def update_cart_selection(self, user_id: str, changes: dict[str, Any]) -> CartSelectionRecord:
        with self._session() as db:
            row = db.get(CartSelection, user_id)
            if row is None:
                row = CartSelection(user_id=user_id)
                db.add(row)
            for key in ("coupon_code", "delivery_option_id", "shipping_address_id", "payment_method"):
                if key in changes:
                    setattr(row, key, changes[key])
            row.updated_at = utcnow()
            db.commit()
            return CartSelectionRecord(
                coupon_code=row.coupon_code,
                delivery_option_id=row.delivery_option_id,
                shipping_address_id=row.shipping_address_id,
                payment_method=row.payment_method,
            )

    # Orders

    def create_order(self, new_order: NewOrder) -> OrderDetail:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                return self._create_order_once(new_order)
            except IntegrityError as e:
                # Another checkout took the same order number; recompute and retry.
                logger.warning(
                    "[STORE] Order number collision (attempt %s/%s): %s",
                    attempt,
                    ORDER_NUMBER_ATTEMPTS,
                    e.orig,
                )
        raise PersistenceError()

    def _create_order_once(self, new_order: NewOrder) -> OrderDetail:
        with self._session() as db:
            now = new_order.created_at
            order = Order(
                id=uuid4().hex,
                order_number=self._next_order_number(db, now),
                user_id=new_order.user_id,
                customer_name=new_order.customer_name,
                email=new_order.email,
                phone=new_order.phone,
                occasion=new_order.occasion,
                requirements=new_order.requirements,
                items_json=[i.model_dump(mode="json") for i in new_order.items],
                subtotal=new_order.subtotal,
                discount_amount=new_order.discount_amount,
                delivery_charge=new_order.delivery_charge,
                payment_surcharge=new_order.payment_surcharge,
                total=new_order.total,
                coupon_code=new_order.coupon_code,
                delivery_option_id=new_order.delivery_option_id,
                shipping_address_id=new_order.shipping_address_id,
                delivery_address=new_order.delivery_address,
                delivery_date=new_order.delivery_date,
                estimated_delivery_date=new_order.estimated_delivery_date,
                payment_method=new_order.payment_method,
                payment_status="pending",
                status=OrderStatusV1.PENDING.value,
                status_updated_at=now,
                created_at=now,
                updated_at=now,
            )
            db.add(order)
            db.add(
                OrderStatusHistory(
                    id=uuid4().hex,
                    order_id=order.id,
                    status=OrderStatusV1.PENDING.value,
                    note="Order placed",
                    changed_at=now,
                )
            )

            for item in new_order.items:
                result = db.execute(
                    update(Product)
                    .where(Product.id == item.product_id, Product.stock_quantity >= item.quantity)
                    .values(
                        stock_quantity=Product.stock_quantity - item.quantity,
                        in_stock=(Product.stock_quantity - item.quantity) > 0,
                    )
                )
                if result.rowcount == 0:
                    available = db.scalar(
                        select(Product.stock_quantity).where(Product.id == item.product_id)
                    )
                    raise OutOfStockError(
                        f"Insufficient stock for {item.name}. "
                        f"Required: {item.quantity}, Available: {available or 0}"
                    )

            if new_order.coupon_code:
                result = db.execute(
                    update(Coupon)
                    .where(
                        Coupon.code == new_order.coupon_code,
                        (Coupon.usage_limit.is_(None)) | (Coupon.times_used < Coupon.usage_limit),
                    )
                    .values(times_used=Coupon.times_used + 1, updated_at=now)
                )
                if result.rowcount == 0:
                    raise CouponInvalidError("usage limit reached")

            if new_order.user_id:
                db.execute(delete(CartItem).where(CartItem.user_id == new_order.user_id))
                db.execute(delete(CartSelection).where(CartSelection.user_id == new_order.user_id))

            db.commit()
            return _order_detail(order)

    def _next_order_number(self, db: Session, now: datetime) -> str:
        prefix = order_number_prefix(now)
        latest = db.scalar(
            select(Order.order_number)
            .where(Order.order_number.like(f"{prefix}%"))
            .order_by(func.length(Order.order_number).desc(), Order.order_number.desc())
            .limit(1)
        )
        seq = int(latest[len(prefix) :]) + 1 if latest else 1
        return f"{prefix}{seq:04d}"

    def get_order(self, order_id: str) -> OrderDetail | None:
        with self._session() as db:
            order = db.get(Order, order_id)
            return _order_detail(order) if order is not None else None

    def list_user_orders(self, user_id: str) -> list[OrderDetail]:
        with self._session() as db:
            rows = db.scalars(
                select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc())
            ).all()
            return [_order_detail(o) for o in rows]

    def list_advanceable_orders(self, cutoff: datetime, status: OrderStatusV1) -> list[OrderDetail]:
        with self._session() as db:
            rows = db.scalars(
                select(Order)
                .where(Order.status == status.value, Order.status_updated_at <= cutoff)
                .order_by(Order.status_updated_at)
            ).all()
            return [_order_detail(o) for o in rows]

    def advance_order_status(
        self,
        order_id: str,
        expected: OrderStatusV1,
        target: OrderStatusV1,
        *,
        note: str | None = None,
        now: datetime | None = None,
    ) -> OrderDetail:
        if target is OrderStatusV1.CANCELLED or not can_transition(expected, target):
            raise InvalidStatusTransitionError(expected.value, target.value)

        now = now or utcnow()
        with self._session() as db:
            result = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == expected.value)
                .values(status=target.value, status_updated_at=now, updated_at=now)
            )
            if result.rowcount == 0:
                current = db.scalar(select(Order.status).where(Order.id == order_id))
                if current is None:
                    raise NotFoundError("Order not found")
                raise InvalidStatusTransitionError(current, target.value)

            db.add(
                OrderStatusHistory(
                    id=uuid4().hex,
                    order_id=order_id,
                    status=target.value,
                    note=note,
                    changed_at=now,
                )
            )

            order = db.get(Order, order_id)
            assert order is not None
            if target is OrderStatusV1.PROCESSING and not order.points_awarded and order.user_id:
                db.execute(
                    update(User)
                    .where(User.id == order.user_id)
                    .values(points=User.points + PROCESSING_REWARD_POINTS)
                )
                order.points_awarded = True
                logger.info(
                    "[STORE] Awarded %s points to user %s", PROCESSING_REWARD_POINTS, order.user_id
                )

            db.commit()
            db.refresh(order)
            return _order_detail(order)

    def cancel_order(
        self, order_id: str, *, note: str | None = None, now: datetime | None = None
    ) -> OrderDetail:
        now = now or utcnow()
        with self._session() as db:
            result = db.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status.in_([s.value for s in CANCELLABLE_STATUSES]),
                )
                .values(
                    status=OrderStatusV1.CANCELLED.value, status_updated_at=now, updated_at=now
                )
            )
            if result.rowcount == 0:
                current = db.scalar(select(Order.status).where(Order.id == order_id))
                if current is None:
                    raise NotFoundError("Order not found")
                raise InvalidStatusTransitionError(current, OrderStatusV1.CANCELLED.value)

            db.add(
                OrderStatusHistory(
                    id=uuid4().hex,
                    order_id=order_id,
                    status=OrderStatusV1.CANCELLED.value,
                    note=note,
                    changed_at=now,
                )
            )
            db.commit()
            order = db.get(Order, order_id)
            assert order is not None
            return _order_detail(order)

    def get_status_history(self, order_id: str) -> list[StatusHistoryEntryV1]:
        with self._session() as db:
            rows = db.scalars(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.changed_at)
            ).all()
            return [
                StatusHistoryEntryV1(
                    status=OrderStatusV1(r.status), note=r.note, changed_at=_iso(r.changed_at) or ""
                )
                for r in rows
            ]
