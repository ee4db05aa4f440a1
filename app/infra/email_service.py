import logging
import smtplib
import ssl
from datetime import date
from email.message import EmailMessage
from smtplib import SMTPException, SMTPServerDisconnected
from typing import Optional
from ..config import AppConfig

logger = logging.getLogger(__name__)

WEEKDAYS_PT = [
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
]
MONTHS_PT = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho", "julho",
    "agosto", "setembro", "outubro", "novembro", "dezembro",
]


def format_event_date(value: date) -> str:
    """
    Ex: date(2026, 5, 6) → "quarta-feira, 6 de maio de 2026"
    """
    return f"{WEEKDAYS_PT[value.weekday()]}, {value.day} de {MONTHS_PT[value.month - 1]} de {value.year}"


class EmailService:
    """
    Serviço para envio de e-mails.
    Em desenvolvimento, apenas loga no console.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def build_registration_confirmation(
        self,
        to_email: str,
        name: str,
        mobile_number: Optional[str],
        class_name: str,
        department: str,
        event_title: str,
        event_date: date,
        event_time: str,
        location: Optional[str],
    ) -> EmailMessage:
        """
        Monta o e-mail de confirmação de inscrição.
        """
        # ASSERT: garantir que dados básicos estão presentes
        if not to_email or not to_email.strip():
            logger.error(f"Tentativa de envio de e-mail sem destinatário: name={name}")
            raise ValueError("to_email não pode estar vazio")

        if not name or not name.strip():
            logger.error(f"Tentativa de envio de e-mail sem nome: to_email={to_email}")
            raise ValueError("name não pode estar vazio")

        subject = f"Inscrição confirmada: {event_title}"
        body = f"""Olá, {name}!

Obrigado por se inscrever em {event_title}!

Seus dados de inscrição:
- Nome: {name}
- E-mail: {to_email}
- Celular: {mobile_number or 'Não informado'}
- Turma: {class_name}
- Departamento: {department}

Detalhes do evento:
- Evento: {event_title}
- Data: {format_event_date(event_date)}
- Horário: {event_time}
- Local: {location or 'Auditório do Campus'}

Chegue com 15 minutos de antecedência e não esqueça sua carteirinha de estudante.

Dúvidas? Fale com a gente em {self._config.contact_email}.

Até lá!
Equipe de Eventos do Campus
"""

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.smtp_from
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    def send(self, msg: EmailMessage) -> None:
        """
        Envia a mensagem via SMTP, ou apenas loga em modo desenvolvimento.
        """
        to_email = msg["To"]

        if self._config.smtp_host == "dev-log":
            logger.warning(
                f"⚠️ MODO DEV: E-mail NÃO foi enviado (apenas simulado). "
                f"Para enviar e-mails reais, configure SMTP_HOST no .env. "
                f"Destinatário: {to_email}"
            )
            logger.info(
                f"E-mail (FAKE) para {to_email}, assunto={msg['Subject']}\n{msg.get_content()}"
            )
            return

        try:
            logger.info(
                f"Iniciando conexão SMTP: host={self._config.smtp_host}, "
                f"port={self._config.smtp_port}, from={self._config.smtp_from}"
            )
            ssl_context = ssl.create_default_context()

            if self._config.smtp_port == 465:
                # SSL direto
                server = smtplib.SMTP_SSL(
                    self._config.smtp_host,
                    self._config.smtp_port,
                    timeout=30,
                    context=ssl_context,
                )
            else:
                # STARTTLS (porta 587 ou outras)
                server = smtplib.SMTP(
                    self._config.smtp_host,
                    self._config.smtp_port,
                    timeout=30,
                )
                if self._config.smtp_user:
                    server.starttls(context=ssl_context)

            try:
                if self._config.smtp_user:
                    logger.debug(f"Autenticando SMTP: user={self._config.smtp_user}")
                    server.login(self._config.smtp_user, self._config.smtp_password)
                logger.debug(f"Enviando mensagem SMTP para: {to_email}")
                server.send_message(msg)
            finally:
                server.quit()

            logger.info(
                f"✅ E-mail REAL enviado com sucesso via SMTP: to={to_email}, "
                f"host={self._config.smtp_host}, port={self._config.smtp_port}"
            )
        except SMTPException as e:
            if isinstance(e, SMTPServerDisconnected):
                logger.error(
                    f"Erro SMTP: Conexão fechada durante o envio. "
                    f"Verifique: host={self._config.smtp_host}, port={self._config.smtp_port}, "
                    f"user={self._config.smtp_user}"
                )
            else:
                logger.error(
                    f"Erro SMTP ao enviar e-mail: to={to_email}, "
                    f"error={type(e).__name__}: {e}",
                    exc_info=True,
                )
            raise
        except OSError as e:
            logger.error(
                f"Erro de conexão ao enviar e-mail: to={to_email}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            raise
