from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship, validates

from .db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Address(Base):
    __tablename__ = "address"
    id = Column(Integer, primary_key=True, index=True)
    street = Column(String)
    city = Column(String)
    uf = Column(String)
    state = Column(String)
    neighborhood = Column(String)
    country = Column(String)
    number = Column(String)

    owner = relationship("User", back_populates="address", uselist=False)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    phone = Column(String, unique=True, index=True, nullable=True)
    role = Column(String)
    # NULL: no local password, the account signs in through an external identity only
    password = Column(String, nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)
    text_to_speech = Column(Boolean, default=False, nullable=False)
    creation = Column(DateTime, default=_utcnow, nullable=False)
    address_id = Column(Integer, ForeignKey("address.id"), unique=True, nullable=True)

    address = relationship("Address", back_populates="owner")

    @property
    def has_local_password(self) -> bool:
        return self.password is not None

    @validates("creation")
    def _validate_creation(self, key, value):
        if self.creation is not None and value != self.creation:
            raise ValueError("creation timestamp is immutable")
        return value

    def to_public_dict(self) -> dict:
        """Public profile fields; the password hash is never included."""
        return {
            "id": self.id,
            "email": self.email,
            "fullName": self.full_name,
            "role": self.role,
            "phone": self.phone,
            "textToSpeech": self.text_to_speech,
        }
