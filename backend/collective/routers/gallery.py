"""Gallery album and comment API routes."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from collective.auth import Principal, get_principal
from collective.database import get_db
from collective.schemas.gallery import (
    AlbumCreate, AlbumUpdate, AlbumOut, CommentCreate, CommentHide, CommentOut,
)
from collective.services import gallery_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/albums", response_model=AlbumOut, status_code=status.HTTP_201_CREATED)
def create_album(payload: AlbumCreate, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return gallery_service.create_album(db, principal, **payload.model_dump())


@router.get("/albums", response_model=list[AlbumOut])
def list_albums(
    owner_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return gallery_service.list_albums(db, principal, owner_id=owner_id)


@router.get("/albums/{album_id}", response_model=AlbumOut)
def get_album(album_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return gallery_service.get_album(db, principal, album_id)


@router.patch("/albums/{album_id}", response_model=AlbumOut)
def update_album(
    album_id: str,
    payload: AlbumUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return gallery_service.update_album(db, principal, album_id, payload.model_dump(exclude_unset=True))


@router.delete("/albums/{album_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_album(album_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    gallery_service.delete_album(db, principal, album_id)


@router.post("/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
def create_comment(
    payload: CommentCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    """Member comment. Guests use /api/guest/request-code instead."""
    return gallery_service.create_comment(db, principal, **payload.model_dump())


@router.get("/comments", response_model=list[CommentOut])
def list_comments(
    target_type: str = Query(...),
    target_id: str = Query(...),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return gallery_service.list_comments(db, principal, target_type, target_id)


@router.delete("/comments/{comment_id}", response_model=CommentOut)
def delete_comment(comment_id: str, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return gallery_service.delete_comment(db, principal, comment_id)


@router.post("/comments/{comment_id}/hide", response_model=CommentOut)
def hide_comment(
    comment_id: str,
    payload: CommentHide,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return gallery_service.set_comment_hidden(db, principal, comment_id, payload.is_hidden)
