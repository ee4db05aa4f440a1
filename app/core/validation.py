"""
Regras de validação de inscrições e eventos.

Todas as funções coletam todos os erros em uma única passada,
para que a interface possa exibir cada campo inválido de uma vez.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from .eligibility import ensure_utc
from .normalizers import (
    clean_text,
    normalize_email,
    is_valid_name,
    is_valid_email,
    is_valid_mobile,
)

REGISTRANT_FIELDS = ("name", "email", "mobile_number", "class", "department")


def validate_registrant(
    fields: Mapping[str, Any],
    lowercase_email: bool = False,
) -> Tuple[Dict[str, str], Dict[str, str]]:
    """
    Valida os dados de inscrição.

    Args:
        fields: Dados informados (name, email, mobile_number, class, department)
        lowercase_email: Se True, o e-mail limpo sai em minúsculas

    Returns:
        (dados_limpos, erros_por_campo). Sem erros, o segundo dict é vazio.
    """
    cleaned = {name: clean_text(fields.get(name)) for name in REGISTRANT_FIELDS}
    cleaned["email"] = normalize_email(fields.get("email"), lowercase=lowercase_email)
    errors: Dict[str, str] = {}

    if not cleaned["name"]:
        errors["name"] = "Nome completo é obrigatório"
    elif not is_valid_name(cleaned["name"]):
        errors["name"] = "O nome pode conter apenas letras e espaços"

    if not cleaned["email"]:
        errors["email"] = "E-mail é obrigatório"
    elif not is_valid_email(cleaned["email"]):
        errors["email"] = "Informe um e-mail válido"

    if not cleaned["mobile_number"]:
        errors["mobile_number"] = "Celular é obrigatório"
    elif not is_valid_mobile(cleaned["mobile_number"]):
        errors["mobile_number"] = "O celular deve ter 10 dígitos"

    if not cleaned["class"]:
        errors["class"] = "Turma é obrigatória"

    if not cleaned["department"]:
        errors["department"] = "Departamento é obrigatório"

    return cleaned, errors


def event_starts_at(event_date: date, event_time: time) -> datetime:
    """
    Início do evento em UTC (data e horário são guardados separados).
    """
    return datetime.combine(event_date, event_time).replace(tzinfo=timezone.utc)


def validate_event_fields(fields: Mapping[str, Any]) -> Dict[str, str]:
    """
    Valida os dados de um evento (já mesclados, no caso de edição).
    """
    errors: Dict[str, str] = {}

    if not clean_text(fields.get("title")):
        errors["title"] = "Título é obrigatório"

    event_date: Optional[date] = fields.get("event_date")
    event_time: Optional[time] = fields.get("event_time")
    if event_date is None:
        errors["event_date"] = "Data do evento é obrigatória"
    if event_time is None:
        errors["event_time"] = "Horário do evento é obrigatório"

    max_participants = fields.get("max_participants")
    if max_participants is not None and max_participants < 1:
        errors["max_participants"] = "O limite de participantes deve ser no mínimo 1"

    deadline: Optional[datetime] = fields.get("registration_deadline")
    if deadline is not None and event_date is not None and event_time is not None:
        if ensure_utc(deadline) >= event_starts_at(event_date, event_time):
            errors["registration_deadline"] = (
                "O prazo de inscrição deve ser anterior ao início do evento"
            )

    return errors
