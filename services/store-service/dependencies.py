"""Dependency injection for services."""
from fastapi import Request

from services.location_service import LocationService
from services.order_service import OrderService
from services.product_service import ProductService
from services.social_auth_service import SocialAuthService
from services.user_service import UserService


def get_product_service(request: Request) -> ProductService:
    """Get product service instance."""
    return request.app.state.product_service


def get_user_service(request: Request) -> UserService:
    """Get user service instance."""
    return request.app.state.user_service


def get_order_service(request: Request) -> OrderService:
    """Get order service instance."""
    return request.app.state.order_service


def get_location_service(request: Request) -> LocationService:
    """Get location service instance."""
    return request.app.state.location_service


def get_social_auth_service(request: Request) -> SocialAuthService:
    """Get social sign-in verifier."""
    return request.app.state.social_auth_service
