"""
Eventos de mudança (insert/update/delete) nas coleções de eventos
e participantes, com implementação em memória.
"""
import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class ChangeAction(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Collection(str, Enum):
    EVENTS = "events"
    PARTICIPANTS = "participants"


@dataclass(frozen=True)
class ChangeEvent:
    """
    Aviso de que algo mudou. Não carrega o estado novo: quem recebe
    deve buscar os dados de novo no banco.
    """
    collection: Collection
    action: ChangeAction
    record_id: str
    event_id: Optional[str] = None

    @property
    def affected_event_id(self) -> Optional[str]:
        if self.collection == Collection.EVENTS:
            return self.record_id
        return self.event_id

    def to_json(self) -> str:
        return json.dumps({
            "collection": self.collection.value,
            "action": self.action.value,
            "record_id": self.record_id,
            "event_id": self.event_id,
        })

    @classmethod
    def from_json(cls, raw) -> "ChangeEvent":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
        return cls(
            collection=Collection(data["collection"]),
            action=ChangeAction(data["action"]),
            record_id=data["record_id"],
            event_id=data.get("event_id"),
        )


ChangeHandler = Callable[[ChangeEvent], None]


class InMemoryChangeFeed:
    """
    Feed de mudanças em memória, entrega síncrona no mesmo processo.
    Usado em desenvolvimento, testes e como fallback quando o Redis falha.
    """

    def __init__(self) -> None:
        self._handlers: List[ChangeHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: ChangeHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            handlers = list(self._handlers)
        logger.debug(
            f"Mudança publicada (memória): collection={change.collection.value}, "
            f"action={change.action.value}, record_id={change.record_id}"
        )
        for handler in handlers:
            try:
                handler(change)
            except Exception as e:
                # Um assinante com erro não impede a entrega aos demais
                logger.error(
                    f"Erro em assinante do feed de mudanças: {type(e).__name__}: {e}",
                    exc_info=True,
                )

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._handlers.clear()
