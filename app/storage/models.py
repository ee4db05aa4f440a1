from enum import Enum
from uuid import uuid4
from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    Time,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from .database import Base


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleName(str, Enum):
    ADMIN = "admin"
    USER = "user"


class Event(Base):
    """
    Evento do campus com política de inscrição (prazo e limite de vagas).
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    rules = Column(Text, nullable=True)
    location = Column(String(200), nullable=True)
    event_date = Column(Date, nullable=False)
    event_time = Column(Time, nullable=False)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_by = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Participant(Base):
    """
    Inscrição de uma pessoa em um evento.
    """
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("event_id", "email", name="uq_participants_event_email"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    event_id = Column(
        String(36),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=False)
    mobile_number = Column(String(20), nullable=False)
    class_name = Column("class", String(100), nullable=False)
    department = Column(String(100), nullable=False)
    registered_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
