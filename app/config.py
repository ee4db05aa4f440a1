from dataclasses import dataclass
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y")


@dataclass(frozen=True)
class AppConfig:
    """
    Configurações principais da aplicação.

    Segue a ideia de centralizar parâmetros críticos
    para facilitar revisão, testes e mudanças futuras.
    """
    database_url: str = "sqlite:///./campus_events.db"
    env: str = "dev"  # "dev" ou "prod"
    api_key: str = ""
    redis_url: str = ""
    change_channel: str = "campus_events:changes"
    smtp_host: str = "dev-log"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "eventos@campus.edu"
    contact_email: str = "eventos@campus.edu"
    registration_grace_minutes: int = 0  # tolerância após o prazo de inscrição
    normalize_email_case: bool = False  # comparar e-mails sem diferenciar maiúsculas
    media_root: str = "./media"
    media_base_url: str = "http://localhost:8000/media"
    max_image_base64_chars: int = 7_000_000  # limite de caracteres no base64
    max_image_bytes: int = 5 * 1024 * 1024  # limite de bytes após decodificar (5MB)

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Carrega configuração a partir de variáveis de ambiente.
        Primeiro tenta carregar do arquivo .env, depois do ambiente do sistema.
        Levanta erro explícito se algo crítico faltar.
        """
        load_dotenv()

        database_url = os.getenv("DATABASE_URL", "sqlite:///./campus_events.db")
        api_key = os.getenv("API_KEY", "")

        env = os.getenv("ENV", "dev").lower()
        if env not in ("dev", "prod"):
            logger.warning(f"ENV inválido '{env}', usando 'dev' como padrão")
            env = "dev"

        # Em produção o gateway precisa se autenticar
        if env == "prod":
            if not api_key or not api_key.strip():
                raise RuntimeError(
                    "ENV=prod requer API_KEY definida. "
                    "Configure API_KEY no ambiente de produção."
                )
            logger.info("Modo PRODUÇÃO: API_KEY validada")
        elif not api_key or not api_key.strip():
            logger.warning(
                "⚠️  MODO DEV: API_KEY não configurada. "
                "Os endpoints aceitarão requisições sem X-API-KEY. "
                "Configure API_KEY para produção."
            )

        grace_minutes = int(os.getenv("REGISTRATION_GRACE_MINUTES", "0"))
        if grace_minutes < 0:
            raise RuntimeError("REGISTRATION_GRACE_MINUTES não pode ser negativo.")

        return cls(
            database_url=database_url,
            env=env,
            api_key=api_key,
            redis_url=os.getenv("REDIS_URL", ""),
            change_channel=os.getenv("CHANGE_CHANNEL", "campus_events:changes"),
            smtp_host=os.getenv("SMTP_HOST", "dev-log"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_from=os.getenv("SMTP_FROM", "eventos@campus.edu"),
            contact_email=os.getenv("CONTACT_EMAIL", "eventos@campus.edu"),
            registration_grace_minutes=grace_minutes,
            normalize_email_case=_env_flag("NORMALIZE_EMAIL_CASE"),
            media_root=os.getenv("MEDIA_ROOT", "./media"),
            media_base_url=os.getenv("MEDIA_BASE_URL", "http://localhost:8000/media"),
            max_image_base64_chars=int(os.getenv("MAX_IMAGE_BASE64_CHARS", "7000000")),
            max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024))),
        )
