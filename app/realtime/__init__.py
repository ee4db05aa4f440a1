"""
Módulo de notificação de mudanças em tempo real.
Suporta tanto InMemoryChangeFeed quanto RedisChangeFeed.
"""

from .change_feed import (
    ChangeAction,
    ChangeEvent,
    ChangeHandler,
    Collection,
    InMemoryChangeFeed,
)
from .redis_change_feed import RedisChangeFeed

__all__ = [
    "ChangeAction",
    "ChangeEvent",
    "ChangeHandler",
    "Collection",
    "InMemoryChangeFeed",
    "RedisChangeFeed",
]
