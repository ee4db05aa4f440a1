import logging
from datetime import timedelta
from typing import Optional
from .event_manager import EventManager
from .live_status import EventStatusMonitor
from .participant_manager import ParticipantManager
from .registration_coordinator import RegistrationCoordinator
from ..config import AppConfig
from ..infra.email_service import EmailService
from ..infra.identity import IdentityService
from ..infra.media_storage import LocalMediaStorage
from ..infra.notification_dispatcher import ConfirmationDispatcher
from ..realtime import InMemoryChangeFeed, RedisChangeFeed
from ..storage.database import create_session_factory

logger = logging.getLogger(__name__)


class EventPlatform:
    """
    Núcleo da aplicação de eventos.

    - Cria a factory de sessões do banco
    - Escolhe o feed de mudanças (Redis ou InMemory)
    - Liga coordenador de inscrições, gerenciadores e monitor de status
    """

    def __init__(
        self,
        config: AppConfig,
        change_feed=None,
        notifier=None,
    ) -> None:
        self._config = config

        # Feed de mudanças: Redis se configurado, senão InMemory
        if change_feed is not None:
            self.change_feed = change_feed
        elif config.redis_url and config.redis_url.strip():
            try:
                self.change_feed = RedisChangeFeed(
                    redis_url=config.redis_url,
                    channel=config.change_channel,
                )
                logger.info(f"Feed de mudanças usando Redis: channel={config.change_channel}")
            except Exception as e:
                logger.error(f"Erro ao inicializar RedisChangeFeed: {e}, usando InMemory como fallback")
                self.change_feed = InMemoryChangeFeed()
        else:
            self.change_feed = InMemoryChangeFeed()
            logger.info("Feed de mudanças usando InMemory (REDIS_URL não configurada)")

        # Em dev as tabelas são criadas na hora; em prod, via Alembic
        self.db_session_factory = create_session_factory(
            config.database_url,
            create_tables=config.env == "dev",
        )

        grace_period = timedelta(minutes=config.registration_grace_minutes)

        self.email_service = EmailService(config)
        self.notifier = notifier or ConfirmationDispatcher(
            db_session_factory=self.db_session_factory,
            email_service=self.email_service,
        )
        self.identity = IdentityService(self.db_session_factory)
        self.media_storage = LocalMediaStorage(config.media_root, config.media_base_url)

        self.registrations = RegistrationCoordinator(
            db_session_factory=self.db_session_factory,
            notifier=self.notifier,
            change_feed=self.change_feed,
            grace_period=grace_period,
            normalize_email_case=config.normalize_email_case,
        )
        self.events = EventManager(
            db_session_factory=self.db_session_factory,
            identity=self.identity,
            change_feed=self.change_feed,
            media_storage=self.media_storage,
            grace_period=grace_period,
            normalize_email_case=config.normalize_email_case,
        )
        self.participants = ParticipantManager(
            db_session_factory=self.db_session_factory,
            identity=self.identity,
            change_feed=self.change_feed,
            normalize_email_case=config.normalize_email_case,
        )
        self.status_monitor = EventStatusMonitor(
            db_session_factory=self.db_session_factory,
            change_feed=self.change_feed,
            grace_period=grace_period,
        )

        logger.info(
            f"Plataforma de eventos iniciada: env={config.env}, "
            f"grace_minutes={config.registration_grace_minutes}, "
            f"normalize_email_case={config.normalize_email_case}"
        )

    @property
    def config(self) -> AppConfig:
        return self._config

    def close(self) -> None:
        self.change_feed.close()
