import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError
from .eligibility import ClosureReason, EligibilityVerdict, ensure_utc, evaluate_eligibility
from .errors import (
    DuplicateRegistration,
    EventNotFound,
    PersistenceFailure,
    RegistrationClosed,
    ValidationFailed,
)
from .persistence import describe_db_error, is_duplicate_email_violation, open_session
from .registration_state import RegistrationOutcome, RegistrationStatus
from .roster import RosterAggregator
from .validation import validate_registrant
from ..realtime import ChangeAction, ChangeEvent, Collection
from ..storage.models import Participant
from ..storage.repository import EventRepository, ParticipantRepository

logger = logging.getLogger(__name__)


class RegistrationCoordinator:
    """
    Conduz uma tentativa de inscrição do início ao fim.

    Passos: política do evento → elegibilidade → validação dos campos →
    duplicidade por e-mail → gravação → confirmação por e-mail.

    As verificações antes da gravação servem para dar mensagens precisas.
    Quem garante as regras sob concorrência é a própria escrita:
    - a linha do evento é lida com SELECT ... FOR UPDATE (serializa
      as inscrições de um mesmo evento no PostgreSQL);
    - o INSERT é condicional à contagem atual (limite de vagas);
    - a constraint única (event_id, email) barra duplicados.
    """

    def __init__(
        self,
        db_session_factory: sessionmaker,
        notifier,
        change_feed,
        grace_period: timedelta = timedelta(0),
        normalize_email_case: bool = False,
    ) -> None:
        self._db_session_factory = db_session_factory
        self._notifier = notifier
        self._change_feed = change_feed
        self._grace_period = grace_period
        self._normalize_email_case = normalize_email_case

    def register(
        self,
        event_id: str,
        registrant_fields: Mapping[str, Any],
        now: Optional[datetime] = None,
    ) -> RegistrationOutcome:
        """
        Processa uma inscrição e devolve um único resultado.

        Nenhuma exceção sai daqui: toda falha vira um RegistrationOutcome.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        logger.info(f"Tentativa de inscrição: event_id={event_id}")

        try:
            participant, capacity_reached = self._register(event_id, registrant_fields, now)
        except EventNotFound:
            logger.warning(f"Inscrição em evento inexistente: event_id={event_id}")
            return RegistrationOutcome(
                status=RegistrationStatus.EVENT_NOT_FOUND,
                message="Evento não encontrado.",
            )
        except RegistrationClosed as e:
            logger.info(
                f"Inscrição recusada (encerrada): event_id={event_id}, "
                f"reasons={sorted(r.value for r in e.reasons)}"
            )
            return RegistrationOutcome(
                status=RegistrationStatus.CLOSED,
                message=EligibilityVerdict(reasons=e.reasons).describe(),
                reasons=e.reasons,
            )
        except ValidationFailed as e:
            logger.info(
                f"Inscrição recusada (validação): event_id={event_id}, "
                f"fields={sorted(e.field_errors)}"
            )
            return RegistrationOutcome(
                status=RegistrationStatus.VALIDATION_FAILED,
                message="Corrija os campos destacados no formulário.",
                field_errors=e.field_errors,
            )
        except DuplicateRegistration:
            logger.info(f"Inscrição recusada (duplicada): event_id={event_id}")
            return RegistrationOutcome(
                status=RegistrationStatus.DUPLICATE,
                message="Você já está inscrito neste evento.",
            )
        except PersistenceFailure as e:
            return RegistrationOutcome(
                status=RegistrationStatus.PERSISTENCE_FAILURE,
                message=f"Erro ao registrar inscrição: {e}",
            )
        except Exception as e:
            logger.error(
                f"Erro inesperado ao processar inscrição: event_id={event_id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return RegistrationOutcome(
                status=RegistrationStatus.PERSISTENCE_FAILURE,
                message="Erro interno ao processar sua inscrição. Tente novamente mais tarde.",
            )

        self._change_feed.publish(
            ChangeEvent(
                collection=Collection.PARTICIPANTS,
                action=ChangeAction.INSERT,
                record_id=participant.id,
                event_id=event_id,
            )
        )

        outcome = RegistrationOutcome(
            status=RegistrationStatus.REGISTERED,
            message="Inscrição realizada com sucesso!",
            participant_id=participant.id,
            registered_at=ensure_utc(participant.registered_at),
            capacity_reached=capacity_reached,
        )

        # Confirmação por e-mail: falha não desfaz a inscrição
        try:
            self._notifier.notify(participant.id)
            outcome.notification_sent = True
        except Exception as e:
            logger.error(
                f"Falha ao enviar confirmação: participant_id={participant.id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            outcome.notification_sent = False
            outcome.notification_error = (
                "Inscrição confirmada, mas não foi possível enviar o e-mail de confirmação."
            )

        return outcome

    def _register(
        self,
        event_id: str,
        registrant_fields: Mapping[str, Any],
        now: datetime,
    ) -> Tuple[Participant, bool]:
        with open_session(self._db_session_factory) as db:
            events = EventRepository(db)
            participants = ParticipantRepository(db)
            roster = RosterAggregator(db, case_insensitive_email=self._normalize_email_case)

            # 1. Política do evento + contagem atual
            event = events.get(event_id, for_update=True)
            if event is None:
                raise EventNotFound(event_id)
            count = roster.count(event_id)

            # 2. Elegibilidade
            verdict = evaluate_eligibility(
                registration_deadline=event.registration_deadline,
                max_participants=event.max_participants,
                current_participant_count=count,
                now=now,
                grace_period=self._grace_period,
            )
            if not verdict.is_open:
                raise RegistrationClosed(verdict.reasons)

            # 3. Validação de todos os campos
            cleaned, field_errors = validate_registrant(
                registrant_fields,
                lowercase_email=self._normalize_email_case,
            )
            if field_errors:
                raise ValidationFailed(field_errors)

            # 4. Duplicidade
            if roster.find_by_email(event_id, cleaned["email"]) is not None:
                raise DuplicateRegistration(event_id, cleaned["email"])

            # 5. Gravação condicional
            try:
                participant = participants.create_participant(
                    event_id=event_id,
                    name=cleaned["name"],
                    email=cleaned["email"],
                    mobile_number=cleaned["mobile_number"],
                    class_name=cleaned["class"],
                    department=cleaned["department"],
                    registered_at=now,
                    max_participants=event.max_participants,
                )
            except IntegrityError as e:
                if is_duplicate_email_violation(e):
                    # Outra inscrição com o mesmo e-mail foi gravada entre a checagem e a escrita
                    logger.warning(
                        f"Duplicidade detectada via IntegrityError: event_id={event_id}"
                    )
                    raise DuplicateRegistration(event_id, cleaned["email"])
                if events.get(event_id) is None:
                    # Evento removido entre a leitura e a escrita
                    logger.warning(
                        f"Evento removido durante a inscrição: event_id={event_id}"
                    )
                    raise EventNotFound(event_id)
                logger.error(
                    f"Violação de integridade ao gravar inscrição: event_id={event_id}, "
                    f"error={describe_db_error(e)}"
                )
                raise PersistenceFailure(describe_db_error(e)) from e

            if participant is None:
                # As vagas acabaram entre a checagem e a escrita
                raise RegistrationClosed({ClosureReason.CAPACITY_REACHED})

            # 6. Nova contagem (informativo para os próximos)
            capacity_reached = False
            if event.max_participants is not None:
                new_count = roster.count(event_id)
                capacity_reached = new_count >= event.max_participants
                if capacity_reached:
                    logger.info(
                        f"Limite de vagas atingido: event_id={event_id}, "
                        f"count={new_count}, max={event.max_participants}"
                    )

            logger.info(
                f"Participante inscrito: id={participant.id}, event_id={event_id}"
            )
            return participant, capacity_reached
