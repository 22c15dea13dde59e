from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import dashboard
from dependencies import get_db
from models import DashboardSummary

router = APIRouter()


@router.get("/dashboard/summary", response_model=DashboardSummary)
def dashboard_summary_api(today: Optional[date] = None, db: Session = Depends(get_db)):
    return dashboard.summary(db, today)
