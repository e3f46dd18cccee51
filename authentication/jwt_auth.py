import logging
import jwt
from datetime import datetime, timedelta, timezone
from django.conf import settings
from django.contrib.auth.models import User
from ninja.security import APIKeyCookie, HttpBearer
from django.http import HttpRequest
from typing import Optional

logger = logging.getLogger(__name__)


def create_access_token(user: User) -> str:
    """Create JWT access token for user"""
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': user.id,
        'username': user.username,
        'exp': now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        'iat': now
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def get_user_from_token(token: str) -> Optional[User]:
    """Verify JWT token and return the user it was issued to"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired access token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected invalid access token: {e}")
        return None

    user_id = payload.get('user_id')
    if not user_id:
        return None
    return User.objects.filter(id=user_id, is_active=True).first()


class JWTAuth(HttpBearer):
    """JWT Authentication for Django Ninja (Authorization: Bearer <token>)"""

    def authenticate(self, request: HttpRequest, token: str) -> Optional[User]:
        return get_user_from_token(token)


class JWTCookieAuth(APIKeyCookie):
    """JWT carried in the auth cookie set at login"""

    param_name = getattr(settings, 'AUTH_COOKIE_NAME', 'auth-token')

    def authenticate(self, request: HttpRequest, key: Optional[str]) -> Optional[User]:
        if not key:
            return None
        return get_user_from_token(key)


# Global instances
jwt_auth = JWTAuth()
cookie_auth = JWTCookieAuth(csrf=False)
