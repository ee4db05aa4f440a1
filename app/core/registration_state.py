from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from .eligibility import ClosureReason


class RegistrationStatus(str, Enum):
    """
    Resultado final de uma tentativa de inscrição.
    """
    REGISTERED = "registered"
    VALIDATION_FAILED = "validation_failed"
    CLOSED = "closed"
    DUPLICATE = "duplicate"
    EVENT_NOT_FOUND = "event_not_found"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass
class RegistrationOutcome:
    """
    Resposta única da inscrição para a camada de apresentação.

    Falha de notificação não muda o status: aparece apenas em
    notification_error com notification_sent=False.
    """
    status: RegistrationStatus
    message: str
    participant_id: Optional[str] = None
    registered_at: Optional[datetime] = None
    reasons: FrozenSet[ClosureReason] = frozenset()
    field_errors: Dict[str, str] = field(default_factory=dict)
    notification_sent: Optional[bool] = None
    notification_error: Optional[str] = None
    # Informativo: a vaga preenchida por esta inscrição atingiu o limite
    capacity_reached: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == RegistrationStatus.REGISTERED
