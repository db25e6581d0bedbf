import hmac

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import decode_token
from app.db.session import get_db
from app.models.user import User

bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer access token to an active user."""
    if creds is None:
        raise _unauthorized("Not authenticated")
    try:
        user_id = decode_token(creds.credentials).get("sub")
    except JWTError:
        raise _unauthorized("Invalid token")
    user = db.get(User, user_id) if user_id else None
    if user is None or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of `roles`."""
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


def require_kiosk_key(x_kiosk_key: str | None = Header(default=None)) -> None:
    # Gate devices are unauthenticated unless KIOSK_API_KEY is set.
    expected = settings.KIOSK_API_KEY
    if expected and not (x_kiosk_key and hmac.compare_digest(x_kiosk_key, expected)):
        raise HTTPException(status_code=401, detail="Invalid kiosk key")
