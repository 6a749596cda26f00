from pydantic import BaseModel, EmailStr
from typing import Optional, Literal


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None
    user_type: Literal["buyer", "seller"] = "buyer"


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str


class TelegramAuthData(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    photo_url: Optional[str] = None
    auth_date: int
    hash: str


class TelegramLoginRequest(BaseModel):
    auth_data: TelegramAuthData


class TelegramLoginResponse(BaseModel):
    success: bool = True
    email: str
    password: str
    is_new_user: bool


class PasswordResetRequest(BaseModel):
    email: EmailStr
    reset_link: str
    opt_id: Optional[str] = None


class EmailChangeNoticeRequest(BaseModel):
    old_email: EmailStr
    new_email: EmailStr


class EmailSentResponse(BaseModel):
    success: bool = True
    message: str
    email_id: Optional[str] = None
