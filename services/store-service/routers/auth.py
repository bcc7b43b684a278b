"""Authentication API router."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from auth import create_access_token, get_current_user
from database import get_db
from dependencies import get_social_auth_service, get_user_service
from errors import StoreError, http_error
from models import User
from schemas import (
    AuthResponse,
    FacebookLoginRequest,
    GoogleLoginRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserResponse,
)
from services.social_auth_service import FACEBOOK, GOOGLE, SocialAuthService
from services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Create a customer account and return a session token."""
    try:
        user = user_service.register(db, request)
    except StoreError as e:
        raise http_error(e)

    return AuthResponse(token=create_access_token(user.id), user=user)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Authenticate with email and password and return a session token."""
    try:
        user = user_service.authenticate(db, request.email, request.password)
    except StoreError as e:
        raise http_error(e)

    return AuthResponse(token=create_access_token(user.id), user=user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    """Get the current user's profile - requires authentication."""
    return user


async def _social_login(provider, token, db, user_service, social_auth):
    try:
        identity = await social_auth.verify(provider, token)
        user = user_service.social_login(db, identity)
    except StoreError as e:
        raise http_error(e)

    return AuthResponse(token=create_access_token(user.id), user=user)


async def _link_account(provider, token, user, db, user_service, social_auth):
    try:
        identity = await social_auth.verify(provider, token)
        user_service.link_social_account(db, user, identity)
    except StoreError as e:
        raise http_error(e)

    return MessageResponse(message=f"{provider.title()} account linked successfully")


@router.post("/google", response_model=AuthResponse)
async def google_login(
    request: GoogleLoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    social_auth: SocialAuthService = Depends(get_social_auth_service)
):
    """Sign in (or sign up) with a Google ID token."""
    return await _social_login(GOOGLE, request.token, db, user_service, social_auth)


@router.post("/facebook", response_model=AuthResponse)
async def facebook_login(
    request: FacebookLoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    social_auth: SocialAuthService = Depends(get_social_auth_service)
):
    """Sign in (or sign up) with a Facebook access token."""
    return await _social_login(FACEBOOK, request.access_token, db, user_service, social_auth)


@router.post("/link/google", response_model=MessageResponse)
async def link_google(
    request: GoogleLoginRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    social_auth: SocialAuthService = Depends(get_social_auth_service)
):
    """Link a Google account to the signed-in user."""
    return await _link_account(GOOGLE, request.token, user, db, user_service, social_auth)


@router.post("/link/facebook", response_model=MessageResponse)
async def link_facebook(
    request: FacebookLoginRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
    social_auth: SocialAuthService = Depends(get_social_auth_service)
):
    """Link a Facebook account to the signed-in user."""
    return await _link_account(FACEBOOK, request.access_token, user, db, user_service, social_auth)
