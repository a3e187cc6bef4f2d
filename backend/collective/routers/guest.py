"""Guest verification API routes.

The API itself issues codes on behalf of guests, so it acts as the
service principal here; the code is delivered by email, out of band.
"""
import logging
from typing import Any
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.config import settings
from collective.database import get_db
from collective.schemas.guest import CodeRequest, CodeRequestOut, CodeVerify
from collective.services import guest_verification_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/request-code", response_model=CodeRequestOut, status_code=status.HTTP_201_CREATED)
def request_code(payload: CodeRequest, db: Session = Depends(get_db)):
    """Issue a one-time code for a guest action."""
    extra = {"content": payload.content, "parent_id": payload.parent_id}
    verification, code = guest_verification_service.issue_verification(
        db,
        Principal.service(),
        email=payload.email,
        action_type=payload.action_type,
        target_id=payload.target_id,
        guest_name=payload.guest_name,
        payload={k: v for k, v in extra.items() if v is not None},
    )
    return CodeRequestOut(
        verification_id=verification.verification_id,
        expires_at=verification.code_expires_at,
        code=code if settings.EXPOSE_GUEST_CODES else None,
    )


@router.post("/verify-code")
def verify_code(payload: CodeVerify, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Redeem a code and perform the action it was issued for."""
    return guest_verification_service.redeem_verification(
        db, payload.verification_id, payload.code, expected_action=payload.action_type,
    )
