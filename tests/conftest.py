"""Shared fixtures: SQLite em arquivo por teste, feed em memória e notificador falso."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, List, Optional

import pytest

from app.config import AppConfig
from app.core.engine import EventPlatform
from app.core.models import Caller
from app.realtime import ChangeEvent, InMemoryChangeFeed
from app.storage.database import create_session_factory
from app.storage.models import Event, Participant, RoleName, UserRole

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeNotifier:
    """Registra os ids notificados; com fail=True simula falha de envio."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.notified: List[str] = []

    def notify(self, participant_id: str) -> None:
        if self.fail:
            raise RuntimeError("SMTP indisponível")
        self.notified.append(participant_id)


class RecordingFeed(InMemoryChangeFeed):
    """Feed em memória que também guarda tudo o que foi publicado."""

    def __init__(self) -> None:
        super().__init__()
        self.published: List[ChangeEvent] = []

    def publish(self, change: ChangeEvent) -> None:
        self.published.append(change)
        super().publish(change)


@pytest.fixture
def session_factory(tmp_path):
    """Factory de sessões para um banco SQLite novo em tmp_path."""
    return create_session_factory(f"sqlite:///{tmp_path / 'test.db'}", create_tables=True)


@pytest.fixture
def change_feed() -> RecordingFeed:
    return RecordingFeed()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_event(session_factory) -> Callable[..., Event]:
    """Cria eventos direto no banco. Por padrão: aberto, sem limite, daqui a 10 dias."""

    def _make_event(**overrides: Any) -> Event:
        values = {
            "title": "Semana de Tecnologia",
            "description": "Palestras e oficinas",
            "location": "Bloco B",
            "event_date": date(2026, 3, 20),
            "event_time": time(19, 0),
            "registration_deadline": NOW + timedelta(days=5),
            "max_participants": None,
            "created_by": "admin-1",
        }
        values.update(overrides)
        db = session_factory()
        try:
            event = Event(**values)
            db.add(event)
            db.commit()
            db.refresh(event)
            return event
        finally:
            db.close()

    return _make_event


@pytest.fixture
def add_participant(session_factory) -> Callable[..., Participant]:
    """Insere um inscrito direto no banco."""

    def _add(event_id: str, email: str, name: str = "Ana Souza", **overrides: Any) -> Participant:
        values = {
            "event_id": event_id,
            "name": name,
            "email": email,
            "mobile_number": "1234567890",
            "class_name": "3A",
            "department": "Computação",
            "registered_at": NOW,
        }
        values.update(overrides)
        db = session_factory()
        try:
            participant = Participant(**values)
            db.add(participant)
            db.commit()
            db.refresh(participant)
            return participant
        finally:
            db.close()

    return _add


@pytest.fixture
def grant_admin(session_factory) -> Callable[[str], None]:
    def _grant(user_id: str) -> None:
        db = session_factory()
        try:
            db.add(UserRole(user_id=user_id, role=RoleName.ADMIN.value))
            db.commit()
        finally:
            db.close()

    return _grant


@pytest.fixture
def admin(grant_admin) -> Caller:
    grant_admin("admin-1")
    return Caller(user_id="admin-1", email="admin@campus.edu")


@pytest.fixture
def student() -> Caller:
    return Caller(user_id="student-1", email="aluno@campus.edu")


def valid_fields(email: str = "ana@campus.edu", **overrides: Optional[str]) -> dict:
    fields = {
        "name": "Ana Souza",
        "email": email,
        "mobile_number": "1234567890",
        "class": "3A",
        "department": "Computação",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        media_root=str(tmp_path / "media"),
        media_base_url="http://testserver/media",
    )


@pytest.fixture
def platform(app_config, notifier) -> EventPlatform:
    platform = EventPlatform(config=app_config, change_feed=RecordingFeed(), notifier=notifier)
    yield platform
    platform.close()
