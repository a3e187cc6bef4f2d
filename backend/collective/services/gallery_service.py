"""Gallery albums and member comments, all gated by the row policies."""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from collective.auth import Principal
from collective.errors import ConstraintViolation
from collective.models.gallery import Comment, CommentTarget, GalleryAlbum
from collective.services import access_service
from collective.services.access_service import Operation

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000
ALBUM_OWNER_FIELDS = frozenset({"title", "description", "is_published"})
ALBUM_ADMIN_FIELDS = ALBUM_OWNER_FIELDS | {"is_hidden"}


def create_album(
    db: Session,
    principal: Principal,
    title: str,
    description: Optional[str] = None,
    is_published: bool = False,
) -> GalleryAlbum:
    album = GalleryAlbum(
        created_by_profile_id=principal.uid,
        title=title,
        description=description,
        is_published=is_published,
        is_hidden=False,
    )
    access_service.authorize(db, principal, Operation.insert, album)
    db.add(album)
    db.commit()
    db.refresh(album)
    logger.info("Album %s created by %s", album.album_id, principal.uid)
    return album


def list_albums(db: Session, principal: Principal, owner_id: Optional[str] = None) -> list[GalleryAlbum]:
    query = db.query(GalleryAlbum)
    if owner_id:
        query = query.filter(GalleryAlbum.created_by_profile_id == owner_id)
    return access_service.visible(db, principal, query.order_by(GalleryAlbum.created_at.desc()).all())


def get_album(db: Session, principal: Principal, album_id: str) -> GalleryAlbum:
    return access_service.get_visible(db, principal, GalleryAlbum, album_id)


def update_album(db: Session, principal: Principal, album_id: str, updates: dict[str, Any]) -> GalleryAlbum:
    album = get_album(db, principal, album_id)
    access_service.authorize(db, principal, Operation.update, album)
    allowed = ALBUM_ADMIN_FIELDS if access_service.is_admin(db, principal) else ALBUM_OWNER_FIELDS
    unknown = set(updates) - allowed
    if unknown:
        raise ConstraintViolation(f"These fields cannot be edited: {sorted(unknown)}")
    for name, value in updates.items():
        setattr(album, name, value)
    db.commit()
    db.refresh(album)
    logger.info("Album %s updated", album_id)
    return album


def delete_album(db: Session, principal: Principal, album_id: str) -> None:
    album = get_album(db, principal, album_id)
    access_service.authorize(db, principal, Operation.delete, album)
    db.delete(album)
    db.commit()
    logger.info("Album %s deleted by %s", album_id, principal.uid)


def _comment_target(value: Any) -> CommentTarget:
    try:
        return CommentTarget(value)
    except ValueError:
        raise ConstraintViolation(f"Invalid comment target: {value!r}")


def create_comment(
    db: Session,
    principal: Principal,
    target_type: Any,
    target_id: str,
    content: str,
    parent_id: Optional[str] = None,
) -> Comment:
    """Member comment. Guests go through the email verification flow instead."""
    content = (content or "").strip()
    if not content:
        raise ConstraintViolation("Comment content required")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ConstraintViolation(f"Comment too long (max {MAX_COMMENT_LENGTH} characters)")

    comment = Comment(
        target_type=_comment_target(target_type),
        target_id=target_id,
        parent_id=parent_id,
        author_profile_id=principal.uid,
        content=content,
    )
    access_service.authorize(db, principal, Operation.insert, comment)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info("Comment %s on %s %s by %s", comment.comment_id, target_type, target_id, principal.uid)
    return comment


def list_comments(db: Session, principal: Principal, target_type: Any, target_id: str) -> list[Comment]:
    rows = (
        db.query(Comment)
        .filter(Comment.target_type == _comment_target(target_type), Comment.target_id == target_id)
        .order_by(Comment.created_at)
        .all()
    )
    return access_service.visible(db, principal, rows)


def delete_comment(db: Session, principal: Principal, comment_id: str) -> Comment:
    """Soft delete; the row stays so replies keep their parent."""
    comment = access_service.get_visible(db, principal, Comment, comment_id)
    access_service.authorize(db, principal, Operation.delete, comment)
    comment.is_deleted = True
    db.commit()
    db.refresh(comment)
    logger.info("Comment %s deleted by %s", comment_id, principal.uid)
    return comment


def set_comment_hidden(db: Session, principal: Principal, comment_id: str, is_hidden: bool) -> Comment:
    access_service.require_admin(db, principal)
    comment = access_service.get_visible(db, principal, Comment, comment_id)
    comment.is_hidden = is_hidden
    db.commit()
    db.refresh(comment)
    logger.info("Comment %s hidden=%s by %s", comment_id, is_hidden, principal.uid)
    return comment
