"""Orders API router."""
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.orm import Session
from opentelemetry import trace

from auth import get_current_user, require_admin
from database import get_db
from dependencies import get_order_service
from errors import StoreError, http_error
from models import User
from schemas import (
    OrderCreate,
    OrderCreatedResponse,
    OrderResponse,
    OrdersListResponse,
    OrderStatusUpdate,
)
from services.order_service import OrderService

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Place an order - requires authentication.

    Stock is taken atomically with the order; the confirmation email is sent
    afterwards and never fails the request.
    """
    span = trace.get_current_span()
    span.set_attribute("user.id", user.id)

    try:
        order = await order_service.place_order(db, request, user)
    except StoreError as e:
        raise http_error(e)

    return OrderCreatedResponse(message="Order created successfully", order=order)


@router.get("/my-orders", response_model=OrdersListResponse)
async def get_my_orders(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get the current user's orders - requires authentication."""
    orders = order_service.list_user_orders(db, user.id)
    return {"orders": orders}


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get a single order. Customers only see their own orders."""
    try:
        return order_service.get_order(db, order_id, user)
    except StoreError as e:
        raise http_error(e)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    request: OrderStatusUpdate,
    order_id: int = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    order_service: OrderService = Depends(get_order_service)
):
    """Update order status and shipping details - admin only."""
    try:
        return await order_service.update_status(db, order_id, request)
    except StoreError as e:
        raise http_error(e)


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int = Path(..., description="Order ID"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel a pending or confirmed order and restore its stock."""
    try:
        return order_service.cancel_order(db, order_id, user)
    except StoreError as e:
        raise http_error(e)
