"""Database models for the store service."""
import enum
from datetime import datetime
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class ProductCategory(str, enum.Enum):
    LAPTOPS = "Laptops"
    PHONES = "Phones"
    TABLETS = "Tablets"
    ACCESSORIES = "Accessories"
    WEARABLES = "Wearables"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cash_on_delivery"


class DeliveryOption(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    PRIORITY = "priority"
    PICKUP = "pickup"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    """User account model."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=False, default="")
    password_hash = Column(String, nullable=False)
    google_id = Column(String, unique=True, index=True, nullable=True)
    facebook_id = Column(String, unique=True, index=True, nullable=True)
    avatar = Column(String, nullable=True)
    role = Column(Enum(UserRole, values_callable=_values), default=UserRole.CUSTOMER, index=True)
    is_active = Column(Boolean, default=True, index=True)
    email_verified = Column(Boolean, default=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = relationship("Order", back_populates="user")


class Product(Base):
    """Product model."""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        CheckConstraint("discount >= 0 AND discount <= 100", name="ck_products_discount_range"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), index=True, nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, index=True)
    original_price = Column(Numeric(10, 2), nullable=True)
    category = Column(Enum(ProductCategory, values_callable=_values), nullable=False, index=True)
    brand = Column(String, nullable=False, index=True)
    image = Column(String, nullable=False)
    images = Column(JSON, default=list)
    specs = Column(JSON, default=list)
    rating = Column(Numeric(2, 1), default=0, index=True)
    review_count = Column(Integer, default=0)
    stock = Column(Integer, default=0, nullable=False)
    sku = Column(String, unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    discount = Column(Integer, default=0, nullable=False)
    tags = Column(JSON, default=list)
    features = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Order(Base):
    """Order model."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), default=0)
    shipping_fee = Column(Numeric(10, 2), default=0)
    tax = Column(Numeric(10, 2), default=0)
    final_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(OrderStatus, values_callable=_values), default=OrderStatus.PENDING, index=True)
    payment_status = Column(Enum(PaymentStatus, values_callable=_values), default=PaymentStatus.PENDING, index=True)
    payment_method = Column(Enum(PaymentMethod, values_callable=_values), nullable=False)
    delivery_option = Column(Enum(DeliveryOption, values_callable=_values), default=DeliveryOption.STANDARD)
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    customer_notes = Column(Text)
    estimated_delivery = Column(DateTime)
    tracking_number = Column(String)
    carrier = Column(String)
    is_guest_order = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    """Product snapshot captured when the order was placed."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    product_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    image = Column(String)
    brand = Column(String)
    category = Column(String)

    order = relationship("Order", back_populates="items")
