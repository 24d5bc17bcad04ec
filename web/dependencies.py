from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from api.open_ai_client import AICoach
from database import get_db
from models.models import User


def get_current_user(
    x_user_id: Optional[int] = Header(default=None),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the user the authentication layer put in the X-User-Id header."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


@lru_cache
def get_coach() -> AICoach:
    return AICoach()
