import logging
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)


def describe_db_error(error: SQLAlchemyError) -> str:
    """
    Mensagem do driver, sem o SQL que o SQLAlchemy anexa.
    """
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)


@contextmanager
def open_session(db_session_factory: sessionmaker) -> Iterator[Session]:
    """
    Abre uma sessão e converte erros do banco em PersistenceFailure.
    """
    db: Session = db_session_factory()
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Erro de banco de dados: error={type(e).__name__}: {describe_db_error(e)}",
            exc_info=True,
        )
        raise PersistenceFailure(describe_db_error(e)) from e
    finally:
        db.close()


PARTICIPANT_EMAIL_CONSTRAINT = "uq_participants_event_email"
# SQLite não informa o nome da constraint, só as colunas
SQLITE_PARTICIPANT_EMAIL_MESSAGE = "UNIQUE constraint failed: participants.event_id, participants.email"


def is_duplicate_email_violation(error: IntegrityError) -> bool:
    """
    Se o IntegrityError veio da constraint única (event_id, email).
    Outras violações (ex: chave estrangeira) não são duplicidade.
    """
    message = describe_db_error(error)
    return PARTICIPANT_EMAIL_CONSTRAINT in message or SQLITE_PARTICIPANT_EMAIL_MESSAGE in message
