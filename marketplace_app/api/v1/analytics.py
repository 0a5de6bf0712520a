from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace_app.database.connection import get_db
from marketplace_app.schemas.analytics import CreatorTotalsResponse, DailyAnalyticsResponse
from marketplace_app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/applications/{application_id}", response_model=List[DailyAnalyticsResponse])
def get_application_analytics(application_id: str, db: Session = Depends(get_db)):
    """Daily click rollup of one application, newest day first"""
    return AnalyticsService(db).get_by_application(application_id)


@router.get("/creators/{creator_id}", response_model=CreatorTotalsResponse)
def get_creator_totals(creator_id: str, db: Session = Depends(get_db)):
    return AnalyticsService(db).get_creator_totals(creator_id)
