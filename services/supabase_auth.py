# services/supabase_auth.py
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database import get_db
from models.user import User
from utils.db_upsert import insert_if_absent

logger = logging.getLogger(__name__)


def _get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def _decode(token: str, settings: Settings) -> dict:
    if not settings.supabase_jwt_secret:
        raise HTTPException(status_code=500, detail="SUPABASE_JWT_SECRET missing")

    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,  # HS256 uses shared secret
            algorithms=["HS256"],
            audience=settings.supabase_jwt_aud,
            issuer=f"{settings.supabase_project_url}/auth/v1",
        )
    except JWTError as e:
        logger.info("jwt_rejected error=%s", type(e).__name__)
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def get_current_supabase_user(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict:
    token = _get_bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    return _decode(token, settings)


async def get_optional_supabase_user(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[dict]:
    """Like get_current_supabase_user, but anonymous callers get None instead of 401."""
    token = _get_bearer_token(request)
    if not token:
        return None
    return _decode(token, settings)


def _ensure_local_user(db: Session, payload: dict) -> User:
    supabase_user_id = payload.get("sub")
    if not supabase_user_id:
        raise HTTPException(status_code=401, detail="Invalid auth token")

    user = db.get(User, str(supabase_user_id))
    if user:
        return user

    # Email can be in different places depending on Supabase config
    email = payload.get("email") or (payload.get("user_metadata") or {}).get("email")

    # two first requests of a new user can race here
    insert_if_absent(db, User, {"id": str(supabase_user_id), "email": email}, conflict_columns=("id",))
    db.commit()
    return db.get(User, str(supabase_user_id))


def get_current_db_user(
    db: Session = Depends(get_db),
    payload: dict = Depends(get_current_supabase_user),
) -> User:
    return _ensure_local_user(db, payload)


def get_optional_db_user(
    db: Session = Depends(get_db),
    payload: Optional[dict] = Depends(get_optional_supabase_user),
) -> Optional[User]:
    if payload is None:
        return None
    return _ensure_local_user(db, payload)
