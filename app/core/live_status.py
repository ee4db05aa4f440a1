import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from sqlalchemy.orm import sessionmaker
from .eligibility import EligibilityVerdict
from .errors import PersistenceFailure
from .models import EventSnapshot
from .persistence import open_session
from .roster import RosterAggregator
from ..realtime import ChangeAction, ChangeEvent, Collection
from ..storage.repository import EventRepository

logger = logging.getLogger(__name__)


class EventStatusMonitor:
    """
    Mantém a situação de inscrição dos eventos atualizada a partir do
    feed de mudanças.

    Cada aviso recebido dispara uma nova leitura do evento e da contagem;
    o conteúdo do aviso nunca é usado como contagem. O veredito é calculado
    na leitura, com o `now` de quem pergunta, para o prazo nunca ficar velho.

    Leituras podem correr em paralelo (thread do Redis e requisições).
    Cada uma recebe um número de ordem antes de ir ao banco, e só é
    guardada se for mais nova que a já guardada para o evento.
    """

    def __init__(
        self,
        db_session_factory: sessionmaker,
        change_feed,
        grace_period: timedelta = timedelta(0),
    ) -> None:
        self._db_session_factory = db_session_factory
        self._grace_period = grace_period
        self._snapshots: Dict[str, EventSnapshot] = {}
        self._versions: Dict[str, int] = {}
        self._tickets = itertools.count(1)
        self._lock = threading.Lock()
        change_feed.subscribe(self.handle_change)

    def _next_ticket(self) -> int:
        with self._lock:
            return next(self._tickets)

    def _store(
        self,
        event_id: str,
        ticket: int,
        snapshot: Optional[EventSnapshot],
    ) -> Optional[EventSnapshot]:
        """
        Guarda o snapshot (None = evento sem snapshot) se a leitura for
        mais nova que a atual. Devolve o que ficou guardado.
        """
        with self._lock:
            if ticket < self._versions.get(event_id, 0):
                logger.debug(
                    f"Leitura antiga descartada: event_id={event_id}, ticket={ticket}, "
                    f"current={self._versions[event_id]}"
                )
                return self._snapshots.get(event_id)
            self._versions[event_id] = ticket
            if snapshot is None:
                self._snapshots.pop(event_id, None)
            else:
                self._snapshots[event_id] = snapshot
            return snapshot

    def handle_change(self, change: ChangeEvent) -> None:
        event_id = change.affected_event_id
        if not event_id:
            return

        if change.collection == Collection.EVENTS and change.action == ChangeAction.DELETE:
            self._store(event_id, self._next_ticket(), None)
            logger.debug(f"Snapshot descartado (evento removido): event_id={event_id}")
            return

        try:
            self.refresh(event_id)
        except PersistenceFailure as e:
            # Snapshot possivelmente velho: descarta, a próxima leitura busca de novo
            self._store(event_id, self._next_ticket(), None)
            logger.warning(f"Falha ao atualizar snapshot: event_id={event_id}, error={e}")

    def refresh(self, event_id: str) -> Optional[EventSnapshot]:
        """
        Relê política + contagem do banco e guarda o snapshot.
        """
        ticket = self._next_ticket()
        with open_session(self._db_session_factory) as db:
            event = EventRepository(db).get(event_id)
            snapshot = RosterAggregator(db).snapshot(event) if event is not None else None

        stored = self._store(event_id, ticket, snapshot)
        if snapshot is not None:
            logger.debug(
                f"Snapshot atualizado: event_id={event_id}, count={snapshot.participant_count}, "
                f"ticket={ticket}"
            )
        return stored

    def get_snapshot(self, event_id: str) -> Optional[EventSnapshot]:
        with self._lock:
            snapshot = self._snapshots.get(event_id)
        if snapshot is None:
            snapshot = self.refresh(event_id)
        return snapshot

    def get_status(
        self,
        event_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[EligibilityVerdict]:
        """
        Veredito atual do evento, ou None se o evento não existe.
        """
        snapshot = self.get_snapshot(event_id)
        if snapshot is None:
            return None
        return snapshot.evaluate(now or datetime.now(timezone.utc), self._grace_period)
