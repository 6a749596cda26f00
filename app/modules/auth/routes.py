from fastapi import APIRouter, BackgroundTasks, Depends, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config import settings
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse,
    TelegramLoginRequest, TelegramLoginResponse,
    PasswordResetRequest, EmailChangeNoticeRequest, EmailSentResponse
)
from app.modules.auth.service import AuthService
from app.modules.telegram.service import TelegramNotifier, get_telegram_notifier
from app.modules.mail.sender import EmailSender, EmailDeliveryError, get_email_sender, raise_for_delivery_error
from app.core.dependencies import get_current_profile, get_user_permissions
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])

# Security scheme for JWT Bearer token
security = HTTPBearer()


def get_auth_service(
    supabase: Client = Depends(get_supabase),
    admin_client: Client = Depends(get_service_supabase)
) -> AuthService:
    return AuthService(supabase, admin_client)


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
    notifier: TelegramNotifier = Depends(get_telegram_notifier)
):
    """Register a new buyer or seller; admins are asked on Telegram to review the account"""
    registered = service.register(register_data)
    background_tasks.add_task(notifier.notify_admins_new_user, {
        "id": registered.user_id,
        "email": registered.email,
        "full_name": register_data.full_name,
        "user_type": register_data.user_type,
    })
    return registered


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me")
async def get_current_user(
    profile: Dict = Depends(get_current_profile),
):
    """Current profile and the permissions of its user type (for frontend UI)."""
    return {**profile, "permissions": get_user_permissions(profile)}


@router.post("/telegram", response_model=TelegramLoginResponse)
async def telegram_login(
    request: TelegramLoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Exchange Telegram Login Widget data for sign-in credentials"""
    return service.telegram_login(request.auth_data, settings.telegram_bot_token)


@router.post("/password-reset", response_model=EmailSentResponse)
async def send_password_reset(
    request: PasswordResetRequest,
    sender: EmailSender = Depends(get_email_sender)
):
    """Send the password reset email with the link generated by Supabase Auth"""
    try:
        email_id = sender.send_password_reset(request.email, request.reset_link, request.opt_id)
    except EmailDeliveryError as e:
        raise_for_delivery_error(e)
    return EmailSentResponse(message="Password reset email sent", email_id=email_id)


@router.post("/email-change-notice", response_model=EmailSentResponse)
async def send_email_change_notice(
    request: EmailChangeNoticeRequest,
    profile: Dict = Depends(get_current_profile),
    sender: EmailSender = Depends(get_email_sender)
):
    """Notify the previous address that the account email was changed"""
    try:
        email_id = sender.send_email_change_notice(request.old_email, request.new_email)
    except EmailDeliveryError as e:
        raise_for_delivery_error(e)
    return EmailSentResponse(message="Email change notice sent", email_id=email_id)
