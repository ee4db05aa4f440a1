"""Tests for participant administration."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import (
    AccessDenied,
    DuplicateRegistration,
    EmptyRoster,
    EventNotFound,
    ParticipantNotFound,
    PersistenceFailure,
    ValidationFailed,
)
from app.core.participant_manager import ParticipantManager
from app.core.roster import RosterAggregator
from app.infra.identity import IdentityService
from app.realtime import ChangeAction
from app.storage.repository import ParticipantRepository


@pytest.fixture
def manager(session_factory, change_feed) -> ParticipantManager:
    return ParticipantManager(
        db_session_factory=session_factory,
        identity=IdentityService(session_factory),
        change_feed=change_feed,
    )


class TestParticipantListing:
    def test_list_with_search(self, manager, admin, make_event, add_participant) -> None:
        event = make_event()
        add_participant(event.id, "ana@campus.edu", name="Ana Souza")
        add_participant(event.id, "bruno@campus.edu", name="Bruno Lima")

        assert len(manager.list_participants(admin, event.id)) == 2
        assert [p.name for p in manager.list_participants(admin, event.id, search="bruno")] == ["Bruno Lima"]

    def test_list_requires_admin(self, manager, student, make_event) -> None:
        event = make_event()

        with pytest.raises(AccessDenied):
            manager.list_participants(student, event.id)

    def test_list_unknown_event(self, manager, admin) -> None:
        with pytest.raises(EventNotFound):
            manager.list_participants(admin, "nao-existe")

    def test_export(self, manager, admin, make_event, add_participant) -> None:
        event = make_event(title="Feira")
        add_participant(event.id, "ana@campus.edu")

        filename, content = manager.export_participants(admin, event.id, today=date(2026, 3, 11))

        assert filename == "Feira_participantes_2026-03-11.csv"
        assert '"ana@campus.edu"' in content

    def test_export_without_participants(self, manager, admin, make_event) -> None:
        event = make_event(title="Feira")

        with pytest.raises(EmptyRoster) as excinfo:
            manager.export_participants(admin, event.id, today=date(2026, 3, 11))

        assert str(excinfo.value) == "Nenhum participante para exportar."


class TestParticipantEditing:
    def test_update_revalidates_and_publishes(self, manager, admin, session_factory, make_event, add_participant, change_feed) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        updated = manager.update_participant(admin, participant.id, {"class": " 4B ", "department": "Física"})

        assert updated.class_name == "4B"
        assert updated.department == "Física"
        assert updated.email == "ana@campus.edu"
        [change] = change_feed.published
        assert change.action == ChangeAction.UPDATE
        assert change.event_id == event.id

    def test_update_with_invalid_fields(self, manager, admin, make_event, add_participant) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        with pytest.raises(ValidationFailed) as exc_info:
            manager.update_participant(admin, participant.id, {"name": "Ana 2", "mobile_number": "123"})

        assert set(exc_info.value.field_errors) == {"name", "mobile_number"}

    def test_update_to_taken_email_is_duplicate(self, manager, admin, make_event, add_participant) -> None:
        event = make_event()
        add_participant(event.id, "ana@campus.edu")
        bruno = add_participant(event.id, "bruno@campus.edu", name="Bruno Lima")

        with pytest.raises(DuplicateRegistration):
            manager.update_participant(admin, bruno.id, {"email": "ana@campus.edu"})

    def test_concurrent_email_update_caught_by_unique_constraint(
        self, manager, admin, make_event, add_participant, monkeypatch
    ) -> None:
        event = make_event()
        add_participant(event.id, "ana@campus.edu")
        bruno = add_participant(event.id, "bruno@campus.edu", name="Bruno Lima")
        monkeypatch.setattr(RosterAggregator, "find_by_email", lambda self, event_id, email: None)

        with pytest.raises(DuplicateRegistration):
            manager.update_participant(admin, bruno.id, {"email": "ana@campus.edu"})

    def test_other_integrity_error_on_update_is_persistence_failure(
        self, manager, admin, make_event, add_participant, monkeypatch
    ) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        def rejected_save(self, participant):
            raise IntegrityError("UPDATE", {}, Exception("CHECK constraint failed: participants"))

        monkeypatch.setattr(ParticipantRepository, "save", rejected_save)

        with pytest.raises(PersistenceFailure, match="CHECK constraint failed"):
            manager.update_participant(admin, participant.id, {"name": "Ana Maria"})

    def test_update_keeping_own_email(self, manager, admin, make_event, add_participant) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        updated = manager.update_participant(admin, participant.id, {"email": "ana@campus.edu", "name": "Ana Maria"})

        assert updated.name == "Ana Maria"

    def test_update_unknown_participant(self, manager, admin) -> None:
        with pytest.raises(ParticipantNotFound):
            manager.update_participant(admin, "nao-existe", {"name": "X"})

    def test_delete(self, manager, admin, session_factory, make_event, add_participant, change_feed) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        manager.delete_participant(admin, participant.id)

        db = session_factory()
        try:
            assert ParticipantRepository(db).get(participant.id) is None
        finally:
            db.close()
        assert change_feed.published[-1].action == ChangeAction.DELETE
        with pytest.raises(ParticipantNotFound):
            manager.delete_participant(admin, participant.id)

    def test_delete_requires_admin(self, manager, student, make_event, add_participant) -> None:
        event = make_event()
        participant = add_participant(event.id, "ana@campus.edu")

        with pytest.raises(AccessDenied):
            manager.delete_participant(student, participant.id)
