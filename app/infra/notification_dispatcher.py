import logging
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from smtplib import SMTPException
from .email_service import EmailService
from ..core.errors import NotificationFailed
from ..storage.repository import EventRepository, ParticipantRepository

logger = logging.getLogger(__name__)


class ConfirmationDispatcher:
    """
    Envia a confirmação de inscrição a partir do id do participante.

    Carrega participante + evento do banco e delega o envio ao EmailService.
    Qualquer falha vira NotificationFailed; quem chama decide o que fazer.
    """

    def __init__(self, db_session_factory: sessionmaker, email_service: EmailService) -> None:
        self._db_session_factory = db_session_factory
        self._email_service = email_service

    def notify(self, participant_id: str) -> None:
        db = self._db_session_factory()
        try:
            participant = ParticipantRepository(db).get(participant_id)
            if participant is None:
                raise NotificationFailed(participant_id, "participante não encontrado")
            event = EventRepository(db).get(participant.event_id)
            if event is None:
                raise NotificationFailed(participant_id, "evento não encontrado")

            msg = self._email_service.build_registration_confirmation(
                to_email=participant.email,
                name=participant.name,
                mobile_number=participant.mobile_number,
                class_name=participant.class_name,
                department=participant.department,
                event_title=event.title,
                event_date=event.event_date,
                event_time=event.event_time.strftime("%H:%M"),
                location=event.location,
            )
            self._email_service.send(msg)
            logger.info(
                f"Confirmação enviada: participant_id={participant_id}, event_id={event.id}"
            )
        except (SMTPException, OSError, ValueError, SQLAlchemyError) as e:
            raise NotificationFailed(participant_id, f"{type(e).__name__}: {e}") from e
        finally:
            db.close()
