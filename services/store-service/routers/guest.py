"""Guest checkout API router."""
from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import EmailStr
from sqlalchemy.orm import Session

from auth import create_access_token, create_guest_access_token
from database import get_db
from dependencies import get_order_service, get_user_service
from errors import StoreError, http_error
from schemas import (
    ConvertGuestRequest,
    ConvertGuestResponse,
    GuestOrderCreate,
    GuestOrderCreatedResponse,
    GuestOrderView,
)
from services.order_service import OrderService
from services.user_service import UserService

router = APIRouter(prefix="/api/guest", tags=["guest"])


@router.post("/order", response_model=GuestOrderCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_guest_order(
    request: GuestOrderCreate,
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Place an order without an account. Returns a token for following it."""
    try:
        order = await order_service.place_guest_order(db, request)
    except StoreError as e:
        raise http_error(e)

    return GuestOrderCreatedResponse(
        message="Guest order created successfully",
        order=order,
        guest_access_token=create_guest_access_token(order.id)
    )


@router.get("/order/{order_number}", response_model=GuestOrderView)
async def track_guest_order(
    order_number: str = Path(..., description="Order number"),
    email: EmailStr = Query(..., description="Email used at checkout"),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Track a guest order by number and checkout email."""
    try:
        return order_service.track_guest_order(db, order_number, str(email))
    except StoreError as e:
        raise http_error(e)


@router.post("/convert-to-account", response_model=ConvertGuestResponse)
async def convert_to_account(
    request: ConvertGuestRequest,
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service),
    user_service: UserService = Depends(get_user_service)
):
    """Attach a guest order to a new or existing account."""
    try:
        user, order = order_service.convert_guest_order(db, request, user_service)
    except StoreError as e:
        raise http_error(e)

    return ConvertGuestResponse(
        message="Guest order converted to account successfully",
        token=create_access_token(user.id),
        user=user,
        order=order
    )
