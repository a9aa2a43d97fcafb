"""
User directory: the persistence boundary used by the account use-cases.

The directory stores what it is given. Passwords arrive already hashed; it
never derives or rewrites them.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import Conflict, NotFound
from .models import Address, User

logger = logging.getLogger(__name__)

UNIQUE_FIELDS = {"email", "phone"}
PROTECTED_FIELDS = {"id", "creation"}


class UserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_by_unique_field(self, field: str, value) -> Optional[User]:
        if field not in UNIQUE_FIELDS:
            raise ValueError(f"'{field}' is not a unique user field")
        return self.db.query(User).filter(getattr(User, field) == value).first()

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def create_address(self, **fields) -> Address:
        """Stage an address; it is committed together with the next user write."""
        address = Address(**fields)
        self.db.add(address)
        self.db.flush()
        return address

    def create(self, **fields) -> User:
        user = User(**fields)
        self.db.add(user)
        self._commit()
        self.db.refresh(user)
        return user

    def update(self, user_id: int, **fields) -> User:
        forbidden = PROTECTED_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"cannot update {', '.join(sorted(forbidden))}")
        unknown = set(fields).difference(User.__table__.columns.keys())
        if unknown:
            raise ValueError(f"unknown user fields: {', '.join(sorted(unknown))}")
        user = self.find_by_id(user_id)
        if user is None:
            raise NotFound()
        for name, value in fields.items():
            setattr(user, name, value)
        self._commit()
        self.db.refresh(user)
        return user

    def link_address(self, user_id: int, address_id: int) -> User:
        return self.update(user_id, address_id=address_id)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Unique constraint violated on user write: %s", exc.orig)
            raise Conflict() from exc
