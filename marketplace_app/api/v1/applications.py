from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace_app.database.connection import get_db
from marketplace_app.exceptions import ApplicationNotFound
from marketplace_app.schemas.application import ApplicationResponse
from marketplace_app.services.application_service import ApplicationService

router = APIRouter(prefix="/applications", tags=["applications"])


@router.get("/{application_id}", response_model=ApplicationResponse)
def get_application(application_id: str, db: Session = Depends(get_db)):
    try:
        return ApplicationService(db).get_application(application_id)
    except ApplicationNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Application not found"
        )


@router.put("/{application_id}/approve", response_model=ApplicationResponse)
def approve_application(application_id: str, db: Session = Depends(get_db)):
    """Approve an application and assign its tracking link"""
    try:
        return ApplicationService(db).approve_application(application_id)
    except ApplicationNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Application not found"
        )
