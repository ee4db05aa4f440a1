"""Tests for the confirmation e-mail and its dispatcher."""

from datetime import date
from unittest.mock import MagicMock, patch
from smtplib import SMTPException

import pytest

from app.config import AppConfig
from app.core.errors import NotificationFailed
from app.infra.email_service import EmailService, format_event_date
from app.infra.notification_dispatcher import ConfirmationDispatcher


@pytest.fixture
def email_service() -> EmailService:
    return EmailService(AppConfig(smtp_host="dev-log", contact_email="eventos@campus.edu"))


class TestEmailService:
    def test_format_event_date(self) -> None:
        assert format_event_date(date(2026, 5, 6)) == "quarta-feira, 6 de maio de 2026"

    def test_build_confirmation(self, email_service) -> None:
        msg = email_service.build_registration_confirmation(
            to_email="jane@x.com",
            name="Jane Doe",
            mobile_number="1234567890",
            class_name="10A",
            department="CS",
            event_title="Feira de Ciências",
            event_date=date(2026, 5, 6),
            event_time="19:00",
            location=None,
        )

        assert msg["Subject"] == "Inscrição confirmada: Feira de Ciências"
        assert msg["To"] == "jane@x.com"
        body = msg.get_content()
        assert "Turma: 10A" in body
        assert "Local: Auditório do Campus" in body

    def test_missing_recipient(self, email_service) -> None:
        with pytest.raises(ValueError):
            email_service.build_registration_confirmation(
                "", "Jane", None, "10A", "CS", "Feira", date(2026, 5, 6), "19:00", None
            )

    def test_smtp_send_uses_starttls_and_login(self) -> None:
        service = EmailService(
            AppConfig(smtp_host="smtp.campus.edu", smtp_port=587, smtp_user="bot", smtp_password="segredo")
        )
        msg = service.build_registration_confirmation(
            "jane@x.com", "Jane", None, "10A", "CS", "Feira", date(2026, 5, 6), "19:00", "Bloco A"
        )
        server = MagicMock()
        with patch("app.infra.email_service.smtplib.SMTP", return_value=server):
            service.send(msg)

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot", "segredo")
        server.send_message.assert_called_once_with(msg)
        server.quit.assert_called_once()


class TestConfirmationDispatcher:
    def test_notify_sends_to_participant(self, session_factory, make_event, add_participant, email_service) -> None:
        event = make_event(title="Feira")
        participant = add_participant(event.id, "jane@x.com")
        sent = []
        email_service.send = sent.append

        ConfirmationDispatcher(session_factory, email_service).notify(participant.id)

        [msg] = sent
        assert msg["To"] == "jane@x.com"
        assert msg["Subject"] == "Inscrição confirmada: Feira"

    def test_unknown_participant(self, session_factory, email_service) -> None:
        with pytest.raises(NotificationFailed):
            ConfirmationDispatcher(session_factory, email_service).notify("nao-existe")

    def test_smtp_error_becomes_notification_failed(self, session_factory, make_event, add_participant, email_service) -> None:
        event = make_event()
        participant = add_participant(event.id, "jane@x.com")

        def broken_send(msg):
            raise SMTPException("recusado")

        email_service.send = broken_send

        with pytest.raises(NotificationFailed) as exc_info:
            ConfirmationDispatcher(session_factory, email_service).notify(participant.id)

        assert exc_info.value.participant_id == participant.id
