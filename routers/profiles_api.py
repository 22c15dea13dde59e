from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import crud
from dependencies import get_db
from models import Profile

router = APIRouter()


@router.get("/profiles", response_model=list[Profile])
def list_profiles_api(
    department: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    return crud.list_profiles(db, active_only=not include_inactive, department=department or None)


@router.get("/profiles/{profile_id}", response_model=Profile)
def get_profile_api(profile_id: str, db: Session = Depends(get_db)):
    profile = crud.get_profile(db, profile_id)
    if not profile:
        raise HTTPException(status_code=404, detail="profile not found")
    return profile
