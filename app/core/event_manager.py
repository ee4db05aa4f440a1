import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from .eligibility import EligibilityVerdict, ensure_utc, evaluate_eligibility
from .errors import EventNotFound, ValidationFailed
from .models import Caller
from .normalizers import clean_text, normalize_email
from .persistence import open_session
from .roster import RosterAggregator
from .validation import validate_event_fields
from ..infra.identity import IdentityService
from ..infra.media_storage import LocalMediaStorage, decode_image_upload
from ..realtime import ChangeAction, ChangeEvent, Collection
from ..storage.models import Event
from ..storage.repository import EventRepository

logger = logging.getLogger(__name__)

EVENT_FIELDS = (
    "title",
    "description",
    "rules",
    "location",
    "event_date",
    "event_time",
    "registration_deadline",
    "max_participants",
)
OPTIONAL_TEXT_FIELDS = ("description", "rules", "location")


@dataclass
class EventListing:
    """Evento + contagem de inscritos + situação da inscrição."""
    event: Event
    participant_count: int
    verdict: EligibilityVerdict


@dataclass
class Dashboard:
    events: List[EventListing]
    total_events: int
    total_participants: int


def _prepare_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Limpa os campos recebidos: textos sem espaços nas pontas
    (opcionais vazios viram None) e prazo em UTC.
    """
    data: Dict[str, Any] = {}
    for name in EVENT_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name == "title":
            value = clean_text(value)
        elif name in OPTIONAL_TEXT_FIELDS:
            value = clean_text(value) or None
        elif name == "registration_deadline" and value is not None:
            value = ensure_utc(value)
        data[name] = value
    return data


class EventManager:
    """
    Operações sobre eventos.

    Criação, edição, remoção e imagem exigem administrador; listagem
    pública e detalhes são abertos.
    """

    def __init__(
        self,
        db_session_factory: sessionmaker,
        identity: IdentityService,
        change_feed,
        media_storage: LocalMediaStorage,
        grace_period: timedelta = timedelta(0),
        normalize_email_case: bool = False,
    ) -> None:
        self._db_session_factory = db_session_factory
        self._identity = identity
        self._change_feed = change_feed
        self._media_storage = media_storage
        self._grace_period = grace_period
        self._normalize_email_case = normalize_email_case

    def _publish(self, action: ChangeAction, event_id: str) -> None:
        self._change_feed.publish(
            ChangeEvent(
                collection=Collection.EVENTS,
                action=action,
                record_id=event_id,
                event_id=event_id,
            )
        )

    def _verdict(self, event: Event, count: int, now: datetime) -> EligibilityVerdict:
        return evaluate_eligibility(
            registration_deadline=event.registration_deadline,
            max_participants=event.max_participants,
            current_participant_count=count,
            now=now,
            grace_period=self._grace_period,
        )

    def create_event(self, caller: Optional[Caller], fields: Mapping[str, Any]) -> Event:
        caller = self._identity.require_admin(caller)
        data = _prepare_fields(fields)
        errors = validate_event_fields(data)
        if errors:
            raise ValidationFailed(errors)

        now = datetime.now(timezone.utc)
        with open_session(self._db_session_factory) as db:
            event = EventRepository(db).add(
                Event(**data, created_by=caller.user_id, created_at=now, updated_at=now)
            )

        logger.info(f"Evento criado: id={event.id}, title={event.title}, by={caller.user_id}")
        self._publish(ChangeAction.INSERT, event.id)
        return event

    def update_event(
        self,
        caller: Optional[Caller],
        event_id: str,
        fields: Mapping[str, Any],
    ) -> Event:
        """
        Atualiza apenas os campos informados e revalida o evento resultante.
        """
        caller = self._identity.require_admin(caller)
        changes = _prepare_fields(fields)

        with open_session(self._db_session_factory) as db:
            repo = EventRepository(db)
            event = repo.get(event_id)
            if event is None:
                raise EventNotFound(event_id)

            merged = {name: getattr(event, name) for name in EVENT_FIELDS}
            merged.update(changes)
            errors = validate_event_fields(merged)
            if errors:
                raise ValidationFailed(errors)

            for name, value in changes.items():
                setattr(event, name, value)
            event.updated_at = datetime.now(timezone.utc)
            event = repo.save(event)

        logger.info(
            f"Evento atualizado: id={event_id}, fields={sorted(changes)}, by={caller.user_id}"
        )
        self._publish(ChangeAction.UPDATE, event_id)
        return event

    def delete_event(self, caller: Optional[Caller], event_id: str) -> None:
        caller = self._identity.require_admin(caller)
        with open_session(self._db_session_factory) as db:
            deleted = EventRepository(db).delete(event_id)
        if not deleted:
            raise EventNotFound(event_id)

        logger.info(f"Evento removido: id={event_id}, by={caller.user_id}")
        self._publish(ChangeAction.DELETE, event_id)

    def attach_image(
        self,
        caller: Optional[Caller],
        event_id: str,
        filename: str,
        image_base64: str,
        max_base64_chars: int,
        max_bytes: int,
    ) -> Event:
        """
        Envia a imagem para o storage e grava a URL pública no evento.

        Se a gravação no banco falhar, o arquivo novo é removido.
        Depois de gravar, a imagem anterior (se era deste storage) é apagada.
        """
        caller = self._identity.require_admin(caller)
        extension, data = decode_image_upload(image_base64, filename, max_base64_chars, max_bytes)

        with open_session(self._db_session_factory) as db:
            repo = EventRepository(db)
            event = repo.get(event_id)
            if event is None:
                raise EventNotFound(event_id)

            previous_url = event.image_url
            path = f"events/{event_id}/{uuid4().hex}{extension}"
            event.image_url = self._media_storage.upload(path, data)
            event.updated_at = datetime.now(timezone.utc)
            try:
                event = repo.save(event)
            except SQLAlchemyError:
                logger.warning(f"Gravação da imagem falhou, removendo arquivo: path={path}")
                self._media_storage.delete(path)
                raise

        previous_path = self._media_storage.path_for_url(previous_url)
        if previous_path and previous_path != path:
            self._media_storage.delete(previous_path)

        logger.info(f"Imagem do evento atualizada: id={event_id}, url={event.image_url}")
        self._publish(ChangeAction.UPDATE, event_id)
        return event

    def get_listing(self, event_id: str, now: Optional[datetime] = None) -> EventListing:
        now = ensure_utc(now or datetime.now(timezone.utc))
        with open_session(self._db_session_factory) as db:
            event = EventRepository(db).get(event_id)
            if event is None:
                raise EventNotFound(event_id)
            count = RosterAggregator(db).count(event_id)
        return EventListing(event=event, participant_count=count, verdict=self._verdict(event, count, now))

    def list_upcoming(
        self,
        now: Optional[datetime] = None,
        include_closed: bool = False,
    ) -> List[EventListing]:
        """
        Eventos por data crescente. Sem include_closed, some da lista
        quem já passou do prazo (mais a tolerância).
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        with open_session(self._db_session_factory) as db:
            events = EventRepository(db).list_ordered(ascending=True)
            counts = RosterAggregator(db).counts_by_event()

        listings = []
        for event in events:
            count = counts.get(event.id, 0)
            verdict = self._verdict(event, count, now)
            if verdict.deadline_passed and not include_closed:
                continue
            listings.append(EventListing(event=event, participant_count=count, verdict=verdict))
        return listings

    def dashboard(self, caller: Optional[Caller], now: Optional[datetime] = None) -> Dashboard:
        self._identity.require_admin(caller)
        now = ensure_utc(now or datetime.now(timezone.utc))
        with open_session(self._db_session_factory) as db:
            events = EventRepository(db).list_ordered(ascending=False)
            roster = RosterAggregator(db)
            counts = roster.counts_by_event()
            total_participants = roster.total_participants()

        listings = [
            EventListing(
                event=event,
                participant_count=counts.get(event.id, 0),
                verdict=self._verdict(event, counts.get(event.id, 0), now),
            )
            for event in events
        ]
        return Dashboard(
            events=listings,
            total_events=len(listings),
            total_participants=total_participants,
        )

    def is_registered(self, caller: Optional[Caller], event_id: str) -> bool:
        """
        Se o e-mail do chamador já tem inscrição no evento.
        """
        if caller is None or not caller.email:
            return False
        email = normalize_email(caller.email, lowercase=self._normalize_email_case)
        with open_session(self._db_session_factory) as db:
            roster = RosterAggregator(db, case_insensitive_email=self._normalize_email_case)
            return roster.find_by_email(event_id, email) is not None
