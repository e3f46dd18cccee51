import logging
from typing import Optional

from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from django.http import HttpResponse
from ninja import Router, Schema

from .jwt_auth import cookie_auth, create_access_token, jwt_auth

logger = logging.getLogger(__name__)

router = Router()


class RegisterSchema(Schema):
    username: str
    email: str
    password: str
    first_name: Optional[str] = ""
    last_name: Optional[str] = ""


class LoginSchema(Schema):
    username: str
    password: str


class DemoLoginSchema(Schema):
    email: str
    name: str


class TokenResponse(Schema):
    access_token: str
    token_type: str = "bearer"


class UserSchema(Schema):
    id: int
    username: str
    email: str
    first_name: str
    last_name: str


def set_auth_cookie(response: HttpResponse, token: str) -> None:
    """Store the token in an HttpOnly cookie for browser clients"""
    response.set_cookie(
        getattr(settings, "AUTH_COOKIE_NAME", "auth-token"),
        token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=not settings.DEBUG,
        samesite="Lax",
    )


@router.post("/register", response={201: TokenResponse, 400: dict})
def register(request, data: RegisterSchema):
    """Register a new user"""
    if User.objects.filter(username=data.username).exists():
        return 400, {"error": "Username already exists"}

    if User.objects.filter(email=data.email).exists():
        return 400, {"error": "Email already exists"}

    # Django hashes the password
    user = User.objects.create_user(
        username=data.username,
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name
    )
    logger.info(f"User registered: {user.username}")

    token = create_access_token(user)
    return 201, {
        "access_token": token,
        "token_type": "bearer"
    }


@router.post("/login", response={200: TokenResponse, 401: dict})
def login(request, response: HttpResponse, data: LoginSchema):
    """Login and get JWT token"""
    user = authenticate(username=data.username, password=data.password)

    if user is None:
        logger.warning(f"Failed login for {data.username}")
        return 401, {"error": "Invalid credentials"}

    token = create_access_token(user)
    set_auth_cookie(response, token)
    return {
        "access_token": token,
        "token_type": "bearer"
    }


@router.post("/demo-login", response={200: TokenResponse, 400: dict})
def demo_login(request, response: HttpResponse, data: DemoLoginSchema):
    """Passwordless demo login: get or create a user by email"""
    email = data.email.strip().lower()
    name = data.name.strip()
    if not email or not name:
        return 400, {"error": "Email and name are required"}

    user = User.objects.filter(email=email).first()
    if user is None:
        user = User.objects.create_user(username=email, email=email, first_name=name)
        user.set_unusable_password()
        user.save()
        logger.info(f"Demo user created: {email}")

    token = create_access_token(user)
    set_auth_cookie(response, token)
    return {
        "access_token": token,
        "token_type": "bearer"
    }


@router.get("/me", response={200: UserSchema}, auth=[jwt_auth, cookie_auth])
def me(request):
    """Return the authenticated user"""
    return request.auth
