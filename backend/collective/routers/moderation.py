"""Change report and suggestion API routes. Anyone files, admins review."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal
from collective.database import get_db
from collective.schemas.moderation import (
    ChangeReportCreate, ChangeReportOut, ReviewRequest, SuggestionCreate, SuggestionOut,
)
from collective.services import moderation_service

logger = logging.getLogger(__name__)
reports_router = APIRouter()
suggestions_router = APIRouter()


@reports_router.post("/", response_model=ChangeReportOut, status_code=status.HTTP_201_CREATED)
def create_change_report(
    payload: ChangeReportCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """File a correction for an event or venue. No account needed."""
    return moderation_service.create_change_report(db, principal, **payload.model_dump())


@reports_router.get("/", response_model=list[ChangeReportOut])
def list_change_reports(
    status_filter: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.list_change_reports(db, principal, status=status_filter)


@reports_router.post("/{report_id}/apply", response_model=ChangeReportOut)
def apply_change_report(
    report_id: str,
    payload: ReviewRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.apply_change_report(db, principal, report_id, payload.admin_response)


@reports_router.post("/{report_id}/reject", response_model=ChangeReportOut)
def reject_change_report(
    report_id: str,
    payload: ReviewRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.reject_change_report(db, principal, report_id, payload.admin_response)


@suggestions_router.post("/", response_model=SuggestionOut, status_code=status.HTTP_201_CREATED)
def create_suggestion(
    payload: SuggestionCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.create_suggestion(db, principal, **payload.model_dump())


@suggestions_router.get("/", response_model=list[SuggestionOut])
def list_suggestions(
    event_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.list_suggestions(db, principal, event_id=event_id, status=status_filter)


@suggestions_router.post("/{suggestion_id}/approve", response_model=SuggestionOut)
def approve_suggestion(
    suggestion_id: str,
    payload: ReviewRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.review_suggestion(db, principal, suggestion_id, True, payload.admin_response)


@suggestions_router.post("/{suggestion_id}/reject", response_model=SuggestionOut)
def reject_suggestion(
    suggestion_id: str,
    payload: ReviewRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return moderation_service.review_suggestion(db, principal, suggestion_id, False, payload.admin_response)
