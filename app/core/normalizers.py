"""
Funções para normalizar e validar dados de entrada do usuário.
"""
import re
import unicodedata
from typing import Any, Optional


# Apenas letras (sem acento) e espaços
NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
# Formato simples local@dominio.tld, sem validação RFC 5322 completa
EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")
MOBILE_PATTERN = re.compile(r"^[0-9]{10}$")


def strip_accents(text: str) -> str:
    """
    Remove acentos de uma string.
    """
    return "".join(
        ch for ch in unicodedata.normalize("NFD", text)
        if unicodedata.category(ch) != "Mn"
    )


def clean_text(raw: Any) -> str:
    """
    Converte o valor recebido em texto sem espaços nas pontas.
    None vira string vazia.
    """
    if raw is None:
        return ""
    return str(raw).strip()


def normalize_email(raw: Any, lowercase: bool = False) -> str:
    """
    Remove espaços das pontas do e-mail.

    Por padrão mantém maiúsculas/minúsculas como foram digitadas;
    com lowercase=True devolve o e-mail em minúsculas.
    """
    email = clean_text(raw)
    return email.lower() if lowercase else email


def is_valid_name(name: str) -> bool:
    return bool(NAME_PATTERN.fullmatch(name))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.fullmatch(email))


def is_valid_mobile(mobile_number: str) -> bool:
    """
    Celular com exatamente 10 dígitos decimais.

    Exemplos:
        "1234567890" → True
        "12345-67890" → False
        "12a" → False
    """
    return bool(MOBILE_PATTERN.fullmatch(mobile_number))


def filename_from_title(title: Optional[str], fallback: str = "evento") -> str:
    """
    Monta um trecho de nome de arquivo a partir do título do evento,
    trocando sequências de espaços por "_".

    Exemplos:
        "Hackathon de Verão" → "Hackathon_de_Verao"
    """
    text = strip_accents(clean_text(title))
    if not text:
        return fallback
    return re.sub(r"\s+", "_", text)
