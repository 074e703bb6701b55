from __future__ import annotations

from collections.abc import Iterable

from flask import Blueprint, request
from sqlalchemy.orm import Session

from app.fincrm.api import forbidden, not_found, ok, parse_int_arg
from app.fincrm.db import db_session
from app.fincrm.models import Notification
from app.fincrm.rbac import api_login_required, current_identity

bp = Blueprint("notifications", __name__)

MAX_LIMIT = 100


def create_notification(
    s: Session,
    *,
    user_id: int,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
) -> Notification:
    """Queue one notification. Caller owns the commit."""
    n = Notification(user_id=user_id, type=type, title=title, message=message, link=link)
    s.add(n)
    return n


def create_notification_for_many(
    s: Session,
    *,
    user_ids: Iterable[int],
    type: str,
    title: str,
    message: str,
    link: str | None = None,
) -> list[Notification]:
    return [
        create_notification(s, user_id=uid, type=type, title=title, message=message, link=link)
        for uid in dict.fromkeys(user_ids)
    ]


def unread_count(s: Session, user_id: int) -> int:
    return s.query(Notification).filter(Notification.user_id == user_id, Notification.is_read.is_(False)).count()


@bp.get("")
@api_login_required
def notifications_list():
    identity = current_identity()
    s = db_session()
    unread_only = (request.args.get("unreadOnly") or "").lower() == "true"
    limit = parse_int_arg(request.args.get("limit"), 20, hi=MAX_LIMIT)

    query = s.query(Notification).filter(Notification.user_id == identity.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    return ok({"notifications": [n.to_dict() for n in rows], "unreadCount": unread_count(s, identity.id)})


@bp.patch("/<int:notification_id>/read")
@api_login_required
def notification_mark_read(notification_id: int):
    identity = current_identity()
    s = db_session()
    n = s.get(Notification, notification_id)
    if n is None:
        return not_found("Notification not found")
    if n.user_id != identity.id:
        return forbidden()
    n.is_read = True
    s.commit()
    return ok(n.to_dict())


@bp.patch("/mark-all-read")
@api_login_required
def notifications_mark_all_read():
    identity = current_identity()
    s = db_session()
    updated = (
        s.query(Notification)
        .filter(Notification.user_id == identity.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    s.commit()
    return ok({"updatedCount": updated})
