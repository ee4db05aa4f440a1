"""
Feed de mudanças usando Redis pub/sub como backend.
Cada mudança é publicada como JSON em um canal único.
"""
import logging
import threading
from typing import List, Optional
from redis import Redis
from redis.exceptions import RedisError
from .change_feed import ChangeEvent, ChangeHandler

logger = logging.getLogger(__name__)


class RedisChangeFeed:
    """
    Publica e assina mudanças via Redis pub/sub.

    A escuta roda em uma thread daemon (PubSub.run_in_thread),
    iniciada na primeira assinatura.
    """

    def __init__(self, redis_url: str, channel: str = "campus_events:changes") -> None:
        """
        Args:
            redis_url: URL de conexão Redis (ex: redis://localhost:6379/0)
            channel: Canal onde as mudanças são publicadas
        """
        self._redis = Redis.from_url(redis_url)
        self._channel = channel
        self._handlers: List[ChangeHandler] = []
        self._lock = threading.Lock()
        self._pubsub = None
        self._listener: Optional[threading.Thread] = None

        try:
            self._redis.ping()
            logger.info(f"RedisChangeFeed inicializado: redis_url={redis_url}, channel={channel}")
        except RedisError as e:
            logger.error(f"Erro ao conectar ao Redis: {e}")
            raise

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except RedisError as e:
            logger.warning(f"Redis health check falhou: {e}")
            return False

    def publish(self, change: ChangeEvent) -> None:
        try:
            receivers = self._redis.publish(self._channel, change.to_json())
            logger.debug(
                f"Mudança publicada no Redis: collection={change.collection.value}, "
                f"action={change.action.value}, record_id={change.record_id}, receivers={receivers}"
            )
        except RedisError as e:
            # Notificação em tempo real é opcional: não quebra a operação de origem
            logger.error(
                f"Erro ao publicar mudança no Redis: record_id={change.record_id}, error={e}"
            )

    def subscribe(self, handler: ChangeHandler) -> None:
        with self._lock:
            self._handlers.append(handler)
            if self._listener is None:
                self._pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
                self._pubsub.subscribe(**{self._channel: self._dispatch})
                self._listener = self._pubsub.run_in_thread(sleep_time=0.5, daemon=True)
                logger.info(f"Escutando mudanças no canal Redis: {self._channel}")

    def _dispatch(self, message: dict) -> None:
        try:
            change = ChangeEvent.from_json(message["data"])
        except (KeyError, ValueError) as e:
            logger.warning(f"Mensagem inválida no canal {self._channel}: {e}")
            return

        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(change)
            except Exception as e:
                logger.error(
                    f"Erro em assinante do feed de mudanças: {type(e).__name__}: {e}",
                    exc_info=True,
                )

    def close(self) -> None:
        with self._lock:
            if self._listener is not None:
                self._listener.stop()
                self._listener = None
            if self._pubsub is not None:
                self._pubsub.close()
                self._pubsub = None
            self._handlers.clear()
