from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .eligibility import EligibilityVerdict, evaluate_eligibility


@dataclass(frozen=True)
class Caller:
    """
    Identidade de quem chama a operação, resolvida pela camada HTTP
    a partir dos cabeçalhos do gateway. Passada explicitamente às operações.
    """
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class EventSnapshot:
    """
    Política de inscrição de um evento + contagem de inscritos
    lida do banco em um determinado instante.
    """
    event_id: str
    registration_deadline: Optional[datetime]
    max_participants: Optional[int]
    participant_count: int

    def evaluate(self, now: datetime, grace_period: timedelta = timedelta(0)) -> EligibilityVerdict:
        return evaluate_eligibility(
            registration_deadline=self.registration_deadline,
            max_participants=self.max_participants,
            current_participant_count=self.participant_count,
            now=now,
            grace_period=grace_period,
        )
