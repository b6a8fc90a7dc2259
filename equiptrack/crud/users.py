from __future__ import annotations

from sqlalchemy.orm import Session

from ..models.company import User

UNKNOWN_USER = "Unknown User"


def get_user(db: Session, user_id: str) -> User | None:
    return db.get(User, user_id)


def display_name(first_name: str | None, last_name: str | None) -> str:
    first = (first_name or "").strip()
    last = (last_name or "").strip()
    if first and last:
        return f"{first} {last}"
    return UNKNOWN_USER


class IdentityDirectory:
    """Answers "who is this actor" from the users table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def resolve_actor_display_name(self, user_id: str) -> str:
        user = get_user(self.db, user_id)
        if user is None:
            return UNKNOWN_USER
        return display_name(user.first_name, user.last_name)
