"""
Taxonomia de erros do domínio de eventos e inscrições.
"""
from typing import Dict, FrozenSet, Iterable, Optional

from .eligibility import ClosureReason


class CampusEventsError(Exception):
    """Erro base da aplicação."""


class ValidationFailed(CampusEventsError):
    """
    Um ou mais campos inválidos. Recuperável, exibido campo a campo.
    """

    def __init__(self, field_errors: Dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        super().__init__(f"Campos inválidos: {', '.join(sorted(self.field_errors))}")


class RegistrationClosed(CampusEventsError):
    def __init__(self, reasons: Iterable[ClosureReason]) -> None:
        self.reasons: FrozenSet[ClosureReason] = frozenset(reasons)
        super().__init__(
            f"Inscrições encerradas: {', '.join(sorted(r.value for r in self.reasons))}"
        )


class DuplicateRegistration(CampusEventsError):
    def __init__(self, event_id: str, email: str) -> None:
        self.event_id = event_id
        self.email = email
        super().__init__(f"E-mail já inscrito no evento: event_id={event_id}")


class PersistenceFailure(CampusEventsError):
    """
    Falha na leitura ou escrita do banco. Sem retry automático.
    """


class NotificationFailed(CampusEventsError):
    """
    Falha no envio da confirmação. A inscrição continua válida.
    """

    def __init__(self, participant_id: str, detail: Optional[str] = None) -> None:
        self.participant_id = participant_id
        self.detail = detail
        super().__init__(
            f"Falha ao enviar confirmação: participant_id={participant_id}"
            + (f", detail={detail}" if detail else "")
        )


class EventNotFound(CampusEventsError):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Evento não encontrado: {event_id}")


class EmptyRoster(CampusEventsError):
    """Exportação pedida para um evento sem inscritos."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__("Nenhum participante para exportar.")


class ParticipantNotFound(CampusEventsError):
    def __init__(self, participant_id: str) -> None:
        self.participant_id = participant_id
        super().__init__(f"Participante não encontrado: {participant_id}")


class AccessDenied(CampusEventsError):
    """O chamador não tem o papel exigido pela operação."""


class InvalidUpload(CampusEventsError):
    def __init__(self, message: str, too_large: bool = False) -> None:
        self.too_large = too_large
        super().__init__(message)
