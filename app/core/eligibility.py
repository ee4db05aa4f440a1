"""
Regra de elegibilidade de inscrição.

Decide, para um instante `now`, se um evento aceita novas inscrições
considerando o prazo (com tolerância opcional) e o limite de vagas.
Função pura: não consulta relógio nem banco, apenas os valores recebidos.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import FrozenSet, Optional


class ClosureReason(str, Enum):
    DEADLINE_PASSED = "deadline_passed"
    CAPACITY_REACHED = "capacity_reached"


@dataclass(frozen=True)
class EligibilityVerdict:
    """
    Veredito OPEN, ou CLOSED com todos os motivos aplicáveis.
    """
    reasons: FrozenSet[ClosureReason] = frozenset()

    @property
    def is_open(self) -> bool:
        return not self.reasons

    @property
    def deadline_passed(self) -> bool:
        return ClosureReason.DEADLINE_PASSED in self.reasons

    @property
    def capacity_reached(self) -> bool:
        return ClosureReason.CAPACITY_REACHED in self.reasons

    def describe(self) -> str:
        if self.is_open:
            return "Inscrições abertas."
        parts = []
        if self.deadline_passed:
            parts.append("o prazo de inscrição terminou")
        if self.capacity_reached:
            parts.append("o limite de vagas foi atingido")
        return "Inscrições encerradas: " + " e ".join(parts) + "."


OPEN = EligibilityVerdict()


def ensure_utc(value: datetime) -> datetime:
    """
    Datas sem fuso (ex: lidas do SQLite) são tratadas como UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def evaluate_eligibility(
    registration_deadline: Optional[datetime],
    max_participants: Optional[int],
    current_participant_count: int,
    now: datetime,
    grace_period: timedelta = timedelta(0),
) -> EligibilityVerdict:
    """
    Avalia se o evento aceita inscrições.

    Args:
        registration_deadline: Prazo de inscrição (None = nunca fecha por prazo)
        max_participants: Limite de vagas (None = sem limite)
        current_participant_count: Quantidade atual de inscritos
        now: Instante da avaliação (injetado para testes)
        grace_period: Tolerância somada ao prazo (padrão zero)

    Returns:
        EligibilityVerdict com todos os motivos de encerramento aplicáveis
    """
    reasons = set()

    if registration_deadline is not None:
        effective_deadline = ensure_utc(registration_deadline) + grace_period
        if ensure_utc(now) >= effective_deadline:
            reasons.add(ClosureReason.DEADLINE_PASSED)

    if max_participants is not None and current_participant_count >= max_participants:
        reasons.add(ClosureReason.CAPACITY_REACHED)

    if not reasons:
        return OPEN
    return EligibilityVerdict(reasons=frozenset(reasons))
