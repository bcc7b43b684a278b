"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Any, List, Literal, Optional

from models import (
    DeliveryOption,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ProductCategory,
    UserRole,
)


# ------------ Auth & User ------------

class RegisterRequest(BaseModel):
    """Schema for account registration."""
    full_name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(BaseModel):
    """Login request model."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public view of a user account (no password hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: str
    phone: str
    role: UserRole
    is_active: bool
    avatar: Optional[str] = None
    email_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class GoogleLoginRequest(BaseModel):
    """Google ID token from the client-side sign-in flow."""
    token: str = Field(..., min_length=1)


class FacebookLoginRequest(BaseModel):
    """Facebook user access token."""
    access_token: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    """Token plus the authenticated user."""
    token: str
    token_type: str = "bearer"
    user: UserResponse


# ------------ Products ------------

class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=2, max_length=200)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    original_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    category: ProductCategory
    brand: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    images: List[str] = []
    specs: List[Any] = []
    rating: Decimal = Field(Decimal("0"), ge=0, le=5)
    review_count: int = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None
    is_active: bool = True
    discount: int = Field(0, ge=0, le=100)
    tags: List[str] = []
    features: List[str] = []


class ProductUpdate(BaseModel):
    """Schema for a partial product update."""
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    original_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[ProductCategory] = None
    brand: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    specs: Optional[List[Any]] = None
    rating: Optional[Decimal] = Field(None, ge=0, le=5)
    review_count: Optional[int] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    discount: Optional[int] = Field(None, ge=0, le=100)
    tags: Optional[List[str]] = None
    features: Optional[List[str]] = None


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    price: Decimal
    original_price: Optional[Decimal] = None
    category: ProductCategory
    brand: str
    image: str
    images: List[str] = []
    specs: List[Any] = []
    rating: Decimal
    review_count: int
    stock: int
    sku: str
    is_active: bool
    discount: int
    tags: List[str] = []
    features: List[str] = []
    created_at: datetime


class ProductFilters(BaseModel):
    """Catalog query parameters."""
    category: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_rating: Optional[Decimal] = None
    search: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=100)
    sort_by: Literal["created_at", "price", "rating", "name"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_products: int
    has_next: bool
    has_prev: bool


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    pagination: Pagination


class CategoriesResponse(BaseModel):
    categories: List[str]


class BrandsResponse(BaseModel):
    brands: List[str]


class MessageResponse(BaseModel):
    message: str


# ------------ Orders ------------

class Address(BaseModel):
    """Postal address captured on an order."""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: Optional[str] = None


class OrderItemRequest(BaseModel):
    """One requested line item."""
    product_id: int
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    """Schema for placing an order."""
    items: List[OrderItemRequest]
    shipping_address: Address
    billing_address: Address
    payment_method: PaymentMethod
    delivery_option: Literal["standard", "express", "pickup"] = "standard"
    customer_notes: Optional[str] = None


class GuestOrderCreate(OrderCreate):
    """Schema for placing an order without an account."""
    guest_email: EmailStr
    guest_phone: Optional[str] = None


class OrderItemResponse(BaseModel):
    """Line-item snapshot."""
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: Optional[int] = None
    items: List[OrderItemResponse]
    subtotal: Decimal
    discount: Decimal
    shipping_fee: Decimal
    tax: Decimal
    final_amount: Decimal
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    delivery_option: Optional[DeliveryOption] = None
    shipping_address: dict
    billing_address: dict
    customer_notes: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    is_guest_order: bool
    created_at: datetime


class OrderCreatedResponse(BaseModel):
    message: str
    order: OrderResponse


class OrdersListResponse(BaseModel):
    """Schema for orders list response."""
    orders: List[OrderResponse]


class OrderStatusUpdate(BaseModel):
    """Explicit status / fulfilment update."""
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class GuestOrderCreatedResponse(BaseModel):
    message: str
    order: OrderResponse
    guest_access_token: str


class GuestOrderView(BaseModel):
    """Limited order view returned to guests."""
    model_config = ConfigDict(from_attributes=True)

    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    final_amount: Decimal
    created_at: datetime
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    items: List[OrderItemResponse]


class ConvertGuestRequest(BaseModel):
    order_number: str
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    full_name: str = Field(..., min_length=2, max_length=100)


class ConvertGuestResponse(BaseModel):
    message: str
    token: str
    user: UserResponse
    order: OrderResponse


# ------------ Location ------------

class ShippingCostRequest(BaseModel):
    address: str = Field(..., min_length=1)
    order_value: Decimal = Decimal("0")
    delivery_option: Literal["standard", "express", "priority"] = "standard"


class AddressRequest(BaseModel):
    address: str = Field(..., min_length=1)


class StoreResponse(BaseModel):
    id: int
    name: str
    address: str
    lat: float
    lng: float
    phone: str
    hours: str
    distance: Optional[float] = None


class ShippingCostResponse(BaseModel):
    cost: Decimal
    store: Optional[StoreResponse] = None
    estimated_days: int
    free_shipping_eligible: bool


class NearestStoreResponse(BaseModel):
    store: Optional[StoreResponse] = None


class StoresResponse(BaseModel):
    stores: List[StoreResponse]


class ShippingZone(BaseModel):
    name: str
    min_km: float
    max_km: Optional[float] = None
    cost: Decimal
    delivery_time: str


class ShippingZonesResponse(BaseModel):
    zones: List[ShippingZone]


class ValidatedAddress(BaseModel):
    lat: float
    lng: float
    formatted_address: str


class ValidateAddressResponse(BaseModel):
    address: Optional[ValidatedAddress] = None
