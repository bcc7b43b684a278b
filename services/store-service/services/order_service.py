"""Order management service."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import (
    InsufficientStockError,
    OrderAccessDeniedError,
    OrderNotCancellableError,
    OrderNotFoundError,
    OrderNumberConflictError,
    ProductInactiveError,
    ProductNotFoundError,
    StoreError,
    ValidationError,
)
from models import (
    DeliveryOption,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    User,
    UserRole,
)
from monitoring import (
    order_amount_histogram,
    order_failures_counter,
    orders_cancelled_counter,
    orders_created_counter,
    stock_conflicts_counter,
)
from schemas import ConvertGuestRequest, GuestOrderCreate, OrderCreate, OrderItemRequest, OrderStatusUpdate
from services.email_service import EmailService, Recipient, ShippingUpdate
from services.pricing import PricedLine, calculate_totals, generate_order_number
from services.product_service import ProductService
from services.user_service import UserService, normalize_email

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)
CLOSED_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REFUNDED)
SHIPPING_NOTIFY_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)
REQUIRED_SHIPPING_CONTACT = ("email", "phone")


@dataclass
class ValidatedLine:
    product: Product
    quantity: int


class OrderService:
    """Service for placing, tracking and cancelling orders."""

    def __init__(self, product_service: ProductService, email_service: EmailService):
        """
        Initialize order service.

        Args:
            product_service: Catalog and stock access
            email_service: Notification sender
        """
        self.product_service = product_service
        self.email_service = email_service
        self.tracer = trace.get_tracer(__name__)

    async def place_order(self, db: Session, request: OrderCreate, customer: User) -> Order:
        """
        Place an order for an authenticated customer.

        Args:
            db: Database session
            request: Order request
            customer: Authenticated user

        Returns:
            The committed order

        Raises:
            ValidationError: If required fields are missing
            ProductNotFoundError, ProductInactiveError, InsufficientStockError:
                If a line item cannot be fulfilled (nothing is persisted)
            OrderNumberConflictError: If the generated order number collided
        """
        shipping_address = request.shipping_address.model_dump(mode="json")
        for field in REQUIRED_SHIPPING_CONTACT:
            if not shipping_address.get(field):
                self._record_failure("validation", guest=False)
                raise ValidationError(f"Shipping address {field} is required")

        order = await self._place(
            db,
            request,
            user_id=customer.id,
            shipping_address=shipping_address,
            billing_address=request.billing_address.model_dump(mode="json"),
            guest=False
        )

        # Phase 2: best effort, the order stands whatever happens here
        await self.email_service.send_order_confirmation(
            order, Recipient(email=customer.email, full_name=customer.full_name)
        )
        return order

    async def place_guest_order(self, db: Session, request: GuestOrderCreate) -> Order:
        """
        Place an order without an account.

        The guest email and phone are stamped onto both addresses so the order
        can later be tracked and converted.
        """
        contact = {"email": str(request.guest_email), "phone": request.guest_phone}
        shipping_address = {**request.shipping_address.model_dump(mode="json"), **contact}
        billing_address = {**request.billing_address.model_dump(mode="json"), **contact}

        order = await self._place(
            db,
            request,
            user_id=None,
            shipping_address=shipping_address,
            billing_address=billing_address,
            guest=True
        )

        await self.email_service.send_guest_order_confirmation(
            order,
            Recipient(
                email=str(request.guest_email),
                full_name=f"{request.shipping_address.first_name} {request.shipping_address.last_name}"
            )
        )
        return order

    def validate_line_items(self, db: Session, items: List[OrderItemRequest]) -> List[ValidatedLine]:
        """
        Check every requested line against the catalog. Read-only.

        The first failing line aborts the whole order.
        """
        validated = []
        for item in items:
            product = self.product_service.get_product(db, item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)
            if not product.is_active:
                raise ProductInactiveError(product.id, product.name)
            if product.stock < item.quantity:
                raise InsufficientStockError(product.id, product.name, product.stock)
            validated.append(ValidatedLine(product=product, quantity=item.quantity))
        return validated

    async def _place(
        self,
        db: Session,
        request: OrderCreate,
        user_id: Optional[int],
        shipping_address: Dict,
        billing_address: Dict,
        guest: bool
    ) -> Order:
        span = trace.get_current_span()
        span.set_attribute("order.guest", guest)
        span.set_attribute("order.item_count", len(request.items))

        if not request.items:
            self._record_failure("validation", guest)
            raise ValidationError("Order must contain at least one item")

        delivery_option = DeliveryOption(request.delivery_option)
        span.set_attribute("order.delivery_option", delivery_option.value)

        try:
            lines = self.validate_line_items(db, request.items)
        except StoreError as e:
            self._record_failure(type(e).__name__, guest)
            logger.info("Order rejected during line item validation", extra={
                "user_id": user_id,
                "guest": guest,
                "reason": str(e)
            })
            raise

        totals = calculate_totals(
            [PricedLine(price=line.product.price, discount_percent=line.product.discount or 0,
                        quantity=line.quantity) for line in lines],
            delivery_option
        )

        payment_method = PaymentMethod(request.payment_method)
        default_notes = f"Delivery: {delivery_option.value}"
        if guest:
            default_notes = f"Guest order - {default_notes}"

        order = Order(
            order_number=generate_order_number(guest=guest),
            user_id=user_id,
            subtotal=totals.subtotal,
            discount=totals.discount,
            shipping_fee=totals.shipping_fee,
            tax=totals.tax,
            final_amount=totals.final_amount,
            status=OrderStatus.CONFIRMED,
            payment_status=(
                PaymentStatus.PENDING if payment_method is PaymentMethod.CASH_ON_DELIVERY
                else PaymentStatus.PAID
            ),
            payment_method=payment_method,
            delivery_option=delivery_option,
            shipping_address=shipping_address,
            billing_address=billing_address,
            customer_notes=request.customer_notes or default_notes,
            is_guest_order=guest,
            items=[
                OrderItem(
                    position=position,
                    product_id=line.product.id,
                    name=line.product.name,
                    price=line.product.price,
                    quantity=line.quantity,
                    image=line.product.image,
                    brand=line.product.brand,
                    category=line.product.category.value
                )
                for position, line in enumerate(lines)
            ]
        )

        # Phase 1: order row, snapshots and stock decrements commit together
        try:
            with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
                db_span.set_attribute("db.operation", "INSERT")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("order.number", order.order_number)
                db_span.set_attribute("order.final_amount", float(totals.final_amount))

                db.add(order)
                db.flush()

                for line in lines:
                    if not self.product_service.decrement_stock(db, line.product.id, line.quantity):
                        raise InsufficientStockError(line.product.id, line.product.name)

                db.commit()
                db_span.set_attribute("order.id", order.id)
        except InsufficientStockError as e:
            db.rollback()
            product = self.product_service.get_product(db, e.product_id)
            if product is not None and not product.is_active:
                self._record_failure("ProductInactiveError", guest)
                logger.warning("Product deactivated during placement, order rolled back", extra={
                    "product_id": e.product_id,
                    "user_id": user_id,
                    "guest": guest
                })
                raise ProductInactiveError(product.id, product.name)

            stock_conflicts_counter.add(1, {"product_id": str(e.product_id)})
            self._record_failure("InsufficientStockError", guest)
            logger.warning("Stock taken by a concurrent order, order rolled back", extra={
                "product_id": e.product_id,
                "user_id": user_id,
                "guest": guest
            })
            raise InsufficientStockError(e.product_id, e.name, product.stock if product else 0)
        except IntegrityError as e:
            db.rollback()
            self._record_failure("order_number_conflict", guest)
            logger.error("Order number collision", extra={
                "order_number": order.order_number,
                "error": str(e.orig)
            })
            raise OrderNumberConflictError(order.order_number)
        except SQLAlchemyError as e:
            db.rollback()
            self._record_failure("database", guest)
            logger.error("Failed to create order", extra={
                "user_id": user_id,
                "guest": guest,
                "amount": str(totals.final_amount),
                "error": str(e)
            })
            raise

        labels = {
            "delivery_option": delivery_option.value,
            "payment_method": payment_method.value,
            "guest": str(guest).lower()
        }
        orders_created_counter.add(1, labels)
        order_amount_histogram.record(float(totals.final_amount), labels)

        logger.info("Order created", extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": user_id,
            "guest": guest,
            "subtotal": str(totals.subtotal),
            "discount": str(totals.discount),
            "shipping_fee": str(totals.shipping_fee),
            "tax": str(totals.tax),
            "final_amount": str(totals.final_amount),
            "item_count": len(lines)
        })
        return order

    def _record_failure(self, reason: str, guest: bool) -> None:
        order_failures_counter.add(1, {"reason": reason, "guest": str(guest).lower()})

    def list_user_orders(self, db: Session, user_id: int) -> List[Order]:
        """
        Get all orders for a user, newest first.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            List of orders
        """
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            orders = (
                db.query(Order)
                .filter(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(orders))
            return orders

    def get_order(self, db: Session, order_id: int, user: User) -> Order:
        """
        Fetch an order visible to the user (their own, or any for admins).

        Raises:
            OrderNotFoundError: If missing or owned by someone else
        """
        order = db.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError()
        if user.role != UserRole.ADMIN and order.user_id != user.id:
            raise OrderNotFoundError()
        return order

    def get_order_by_number(self, db: Session, order_number: str) -> Optional[Order]:
        return db.query(Order).filter(Order.order_number == order_number).first()

    async def update_status(self, db: Session, order_id: int, changes: OrderStatusUpdate) -> Order:
        """
        Apply an explicit status / fulfilment update.

        Cancellation is not accepted here because it must restore stock; use
        cancel_order. Cancelled and refunded orders are closed: their stock
        has already been returned, so they cannot be reopened. Moving to
        shipped or delivered emails the customer.
        """
        order = db.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError()

        values = changes.model_dump(exclude_none=True)
        if not values:
            raise ValidationError("No status changes provided")
        if values.get("status") == OrderStatus.CANCELLED:
            raise ValidationError("Use the cancel operation to cancel an order")
        if order.status in CLOSED_STATUSES:
            logger.warning("Rejected update of closed order", extra={
                "order_id": order.id,
                "status": order.status.value,
                "requested_status": values.get("status")
            })
            raise ValidationError(f"Order is {order.status.value} and can no longer be updated")

        previous_status = order.status
        for field, value in values.items():
            setattr(order, field, value)
        db.commit()
        db.refresh(order)

        logger.info("Order status updated", extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "previous_status": previous_status.value,
            "status": order.status.value,
            "payment_status": order.payment_status.value
        })

        if order.status != previous_status and order.status in SHIPPING_NOTIFY_STATUSES:
            recipient = self._recipient_for(order)
            if recipient is not None:
                await self.email_service.send_shipping_update(order, recipient, ShippingUpdate(
                    status=order.status.value,
                    tracking_number=order.tracking_number,
                    carrier=order.carrier,
                    estimated_delivery=(
                        order.estimated_delivery.strftime("%Y-%m-%d") if order.estimated_delivery else None
                    )
                ))
        return order

    def _recipient_for(self, order: Order) -> Optional[Recipient]:
        if order.user is not None:
            return Recipient(email=order.user.email, full_name=order.user.full_name)
        address = order.shipping_address or {}
        if not address.get("email"):
            return None
        return Recipient(
            email=address["email"],
            full_name=f"{address.get('first_name', '')} {address.get('last_name', '')}".strip()
        )

    def cancel_order(self, db: Session, order_id: int, user: User) -> Order:
        """
        Cancel an order and put its stock back.

        Only pending or confirmed orders can be cancelled. Paid orders move to
        refunded, anything else to cancelled. The status change and the stock
        restoration commit together; the status change is conditional so a
        concurrent cancel cannot restore stock twice.

        Raises:
            OrderNotFoundError: If the order is not visible to the user
            OrderNotCancellableError: If the order is past the confirmed stage
        """
        order = self.get_order(db, order_id, user)
        if order.status not in CANCELLABLE_STATUSES:
            raise OrderNotCancellableError(order.order_number, order.status.value)

        payment_status = (
            PaymentStatus.REFUNDED if order.payment_status == PaymentStatus.PAID
            else PaymentStatus.CANCELLED
        )

        try:
            with self.tracer.start_as_current_span("db.transaction.cancel_order") as db_span:
                db_span.set_attribute("db.operation", "UPDATE")
                db_span.set_attribute("db.table", "orders")
                db_span.set_attribute("order.id", order.id)

                result = db.execute(
                    update(Order)
                    .where(Order.id == order.id, Order.status.in_(CANCELLABLE_STATUSES))
                    .values(status=OrderStatus.CANCELLED, payment_status=payment_status)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    db.refresh(order)
                    raise OrderNotCancellableError(order.order_number, order.status.value)

                for item in order.items:
                    if not self.product_service.increment_stock(db, item.product_id, item.quantity):
                        logger.warning("Product removed, stock not restored", extra={
                            "order_id": order.id,
                            "product_id": item.product_id,
                            "quantity": item.quantity
                        })

                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to cancel order", extra={
                "order_id": order_id,
                "error": str(e)
            })
            raise

        db.refresh(order)
        orders_cancelled_counter.add(1, {"payment_status": payment_status.value})
        logger.info("Order cancelled", extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "payment_status": order.payment_status.value,
            "restored_items": len(order.items)
        })
        return order

    def _get_guest_order(self, db: Session, order_number: str, email: str) -> Order:
        order = (
            db.query(Order)
            .filter(Order.order_number == order_number, Order.is_guest_order.is_(True))
            .first()
        )
        if order is None:
            raise OrderNotFoundError()

        order_email = (order.shipping_address or {}).get("email") or ""
        if normalize_email(order_email) != normalize_email(email):
            logger.warning("Guest order access denied", extra={"order_number": order_number})
            raise OrderAccessDeniedError()
        return order

    def track_guest_order(self, db: Session, order_number: str, email: str) -> Order:
        """
        Look up a guest order by number; the email must match the order.

        Raises:
            OrderNotFoundError: If there is no guest order with that number
            OrderAccessDeniedError: If the email does not match
        """
        return self._get_guest_order(db, order_number, email)

    def convert_guest_order(
        self,
        db: Session,
        request: ConvertGuestRequest,
        user_service: UserService
    ) -> Tuple[User, Order]:
        """
        Attach a guest order to an account, creating the account if needed.

        Raises:
            OrderNotFoundError, OrderAccessDeniedError: As for tracking
            InvalidCredentialsError: If the email has an account and the
                password is wrong
        """
        order = self._get_guest_order(db, request.order_number, str(request.email))

        try:
            user = user_service.find_or_create_for_guest(
                db,
                email=str(request.email),
                password=request.password,
                full_name=request.full_name,
                phone=(order.shipping_address or {}).get("phone")
            )
            order.user_id = user.id
            order.is_guest_order = False
            db.commit()
        except StoreError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to convert guest order", extra={
                "order_number": request.order_number,
                "error": str(e)
            })
            raise

        db.refresh(user)
        db.refresh(order)
        logger.info("Guest order converted to account", extra={
            "order_id": order.id,
            "order_number": order.order_number,
            "user_id": user.id
        })
        return user, order
