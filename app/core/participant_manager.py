import logging
from datetime import date
from typing import Any, List, Mapping, Optional, Tuple
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError
from .errors import (
    DuplicateRegistration,
    EmptyRoster,
    EventNotFound,
    ParticipantNotFound,
    PersistenceFailure,
    ValidationFailed,
)
from .models import Caller
from .persistence import describe_db_error, is_duplicate_email_violation, open_session
from .roster import RosterAggregator, export_csv
from .validation import REGISTRANT_FIELDS, validate_registrant
from ..infra.identity import IdentityService
from ..realtime import ChangeAction, ChangeEvent, Collection
from ..storage.models import Participant
from ..storage.repository import EventRepository, ParticipantRepository

logger = logging.getLogger(__name__)

# campo do formulário -> atributo do modelo
FIELD_ATTRIBUTES = {
    "name": "name",
    "email": "email",
    "mobile_number": "mobile_number",
    "class": "class_name",
    "department": "department",
}


class ParticipantManager:
    """
    Operações administrativas sobre inscritos: listagem, exportação,
    edição e remoção.
    """

    def __init__(
        self,
        db_session_factory: sessionmaker,
        identity: IdentityService,
        change_feed,
        normalize_email_case: bool = False,
    ) -> None:
        self._db_session_factory = db_session_factory
        self._identity = identity
        self._change_feed = change_feed
        self._normalize_email_case = normalize_email_case

    def _publish(self, action: ChangeAction, participant_id: str, event_id: str) -> None:
        self._change_feed.publish(
            ChangeEvent(
                collection=Collection.PARTICIPANTS,
                action=action,
                record_id=participant_id,
                event_id=event_id,
            )
        )

    def list_participants(
        self,
        caller: Optional[Caller],
        event_id: str,
        search: Optional[str] = None,
    ) -> List[Participant]:
        self._identity.require_admin(caller)
        with open_session(self._db_session_factory) as db:
            if EventRepository(db).get(event_id) is None:
                raise EventNotFound(event_id)
            return RosterAggregator(db).list_participants(event_id, search)

    def export_participants(
        self,
        caller: Optional[Caller],
        event_id: str,
        today: Optional[date] = None,
    ) -> Tuple[str, str]:
        """
        CSV com todos os inscritos do evento.
        Evento sem inscritos levanta EmptyRoster (não gera arquivo vazio).

        Returns:
            (nome_do_arquivo, conteúdo_csv)
        """
        caller = self._identity.require_admin(caller)
        with open_session(self._db_session_factory) as db:
            event = EventRepository(db).get(event_id)
            if event is None:
                raise EventNotFound(event_id)
            participants = RosterAggregator(db).list_participants(event_id)
            if not participants:
                logger.info(f"Exportação sem inscritos: event_id={event_id}")
                raise EmptyRoster(event_id)
            filename, text = export_csv(event, participants, today=today)

        logger.info(
            f"Exportação de inscritos: event_id={event_id}, total={len(participants)}, "
            f"by={caller.user_id}"
        )
        return filename, text

    def update_participant(
        self,
        caller: Optional[Caller],
        participant_id: str,
        fields: Mapping[str, Any],
    ) -> Participant:
        """
        Edita os dados de um inscrito. O registro resultante passa pelas
        mesmas regras da inscrição, inclusive a de e-mail único no evento.
        """
        caller = self._identity.require_admin(caller)

        with open_session(self._db_session_factory) as db:
            repo = ParticipantRepository(db)
            participant = repo.get(participant_id)
            if participant is None:
                raise ParticipantNotFound(participant_id)

            merged = {
                name: getattr(participant, attribute)
                for name, attribute in FIELD_ATTRIBUTES.items()
            }
            merged.update({name: fields[name] for name in REGISTRANT_FIELDS if name in fields})
            cleaned, errors = validate_registrant(
                merged,
                lowercase_email=self._normalize_email_case,
            )
            if errors:
                raise ValidationFailed(errors)

            event_id = participant.event_id
            existing = RosterAggregator(
                db, case_insensitive_email=self._normalize_email_case
            ).find_by_email(event_id, cleaned["email"])
            if existing is not None and existing.id != participant.id:
                raise DuplicateRegistration(event_id, cleaned["email"])

            for name, attribute in FIELD_ATTRIBUTES.items():
                setattr(participant, attribute, cleaned[name])
            try:
                participant = repo.save(participant)
            except IntegrityError as e:
                if is_duplicate_email_violation(e):
                    raise DuplicateRegistration(event_id, cleaned["email"])
                logger.error(
                    f"Violação de integridade ao atualizar participante: id={participant_id}, "
                    f"error={describe_db_error(e)}"
                )
                raise PersistenceFailure(describe_db_error(e)) from e

        logger.info(f"Participante atualizado: id={participant_id}, by={caller.user_id}")
        self._publish(ChangeAction.UPDATE, participant_id, event_id)
        return participant

    def delete_participant(self, caller: Optional[Caller], participant_id: str) -> None:
        caller = self._identity.require_admin(caller)
        with open_session(self._db_session_factory) as db:
            repo = ParticipantRepository(db)
            participant = repo.get(participant_id)
            if participant is None:
                raise ParticipantNotFound(participant_id)
            event_id = participant.event_id
            repo.delete(participant)

        logger.info(f"Participante removido: id={participant_id}, by={caller.user_id}")
        self._publish(ChangeAction.DELETE, participant_id, event_id)
