from collections.abc import Generator
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from db import SessionLocal
from orm import ProfileORM


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, passed explicitly into every manager operation."""
    id: str
    role: str = "user"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="not authenticated")
    profile = db.get(ProfileORM, x_user_id)
    if not profile or not profile.is_active:
        raise HTTPException(status_code=401, detail="unknown or inactive user")
    return Actor(id=profile.id, role=profile.role)
