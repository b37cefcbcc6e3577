import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import get_db
from .errors import Forbidden, Unauthorized
from .models import Capsule, User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login", auto_error=False)


def create_access_token(user: User, secret_key: str, expires_in: timedelta = timedelta(hours=24)) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "username": user.username,
        "exp": now + expires_in,
        "iat": now,
    }
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_username(token: str, secret_key: str) -> str:
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        raise Unauthorized(f"Invalid token: {e}") from e
    username = payload.get("username")
    if not username:
        raise Unauthorized("Invalid token")
    return username


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise Unauthorized("Not authenticated")
    username = decode_username(token, request.app.state.settings.secret_key)
    user = db.execute(select(User).where(User.username == username)).scalars().first()
    if user is None:
        logger.warning(f"Token presented for unknown user '{username}'")
        raise Unauthorized("Invalid token")
    return user


def ensure_owner(capsule: Capsule, user: User) -> None:
    if capsule.user_id != user.id:
        raise Forbidden("Not authorized")
