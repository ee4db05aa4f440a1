"""
Agregações sobre a lista de inscritos de um evento.

Todas as leituras são pontuais e sem bloqueio: o resultado serve como
indicação para o chamador, não como garantia para a escrita seguinte.
"""
import csv
import io
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from .eligibility import ensure_utc
from .models import EventSnapshot
from .normalizers import clean_text, filename_from_title
from ..storage.models import Event, Participant
from ..storage.repository import ParticipantRepository

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Nome", "E-mail", "Celular", "Turma", "Departamento", "Data de inscrição"]


class RosterAggregator:
    """
    Contagem de inscritos, busca de duplicados por e-mail e listagem
    da lista de participantes de um evento.
    """

    def __init__(self, db: Session, case_insensitive_email: bool = False) -> None:
        self._participants = ParticipantRepository(db)
        self._case_insensitive_email = case_insensitive_email

    def count(self, event_id: str) -> int:
        return self._participants.count_for_event(event_id)

    def find_by_email(self, event_id: str, email: str) -> Optional[Participant]:
        """
        Busca inscrição existente com o mesmo e-mail no evento.
        Comparação exata, salvo se configurado para ignorar maiúsculas.
        """
        return self._participants.find_by_email(
            event_id,
            email,
            case_insensitive=self._case_insensitive_email,
        )

    def snapshot(self, event: Event) -> EventSnapshot:
        return EventSnapshot(
            event_id=event.id,
            registration_deadline=event.registration_deadline,
            max_participants=event.max_participants,
            participant_count=self.count(event.id),
        )

    def list_participants(self, event_id: str, search: Optional[str] = None) -> List[Participant]:
        """
        Lista os inscritos do mais recente para o mais antigo,
        opcionalmente filtrando por um termo de busca.
        """
        participants = self._participants.list_for_event(event_id)
        term = clean_text(search)
        if not term:
            return participants
        return [p for p in participants if matches_search(p, term)]

    def counts_by_event(self) -> Dict[str, int]:
        return self._participants.counts_by_event()

    def total_participants(self) -> int:
        return self._participants.count_all()


def matches_search(participant: Participant, term: str) -> bool:
    """
    Busca sem diferenciar maiúsculas em nome, e-mail, turma e departamento;
    no celular a busca é pelo trecho literal.
    """
    lowered = term.lower()
    for value in (participant.name, participant.email, participant.class_name, participant.department):
        if value and lowered in value.lower():
            return True
    return bool(participant.mobile_number and term in participant.mobile_number)


def export_csv(
    event: Event,
    participants: Sequence[Participant],
    today: Optional[date] = None,
) -> Tuple[str, str]:
    """
    Gera o CSV da lista de inscritos.

    Returns:
        (nome_do_arquivo, conteúdo_csv)
    """
    today = today or datetime.now(timezone.utc).date()
    filename = f"{filename_from_title(event.title)}_participantes_{today.isoformat()}.csv"

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for p in participants:
        registered = (
            ensure_utc(p.registered_at).strftime("%d/%m/%Y") if p.registered_at else "N/A"
        )
        writer.writerow([
            p.name,
            p.email,
            p.mobile_number or "N/A",
            p.class_name or "N/A",
            p.department or "N/A",
            registered,
        ])

    logger.debug(
        f"CSV gerado: event_id={event.id}, participants={len(participants)}, filename={filename}"
    )
    return filename, buffer.getvalue()
