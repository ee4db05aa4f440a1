import logging
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import func, insert, literal, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from .models import Event, Participant, UserRole, new_id

logger = logging.getLogger(__name__)


class EventRepository:
    """
    Repositório para operações de persistência de eventos.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, event_id: str, for_update: bool = False) -> Optional[Event]:
        """
        Busca um evento pelo id.

        Com for_update=True a linha fica bloqueada até o fim da transação
        (ignorado pelo SQLite, que serializa as escritas no próprio banco).
        """
        query = self._db.query(Event).filter(Event.id == event_id)
        if for_update:
            query = query.with_for_update()
        return query.one_or_none()

    def list_ordered(self, ascending: bool = True) -> List[Event]:
        order = Event.event_date.asc() if ascending else Event.event_date.desc()
        return self._db.query(Event).order_by(order, Event.event_time.asc()).all()

    def count_all(self) -> int:
        return self._db.query(func.count(Event.id)).scalar() or 0

    def add(self, event: Event) -> Event:
        try:
            self._db.add(event)
            self._db.commit()
            self._db.refresh(event)
            logger.debug(f"Evento criado: id={event.id}, title={event.title}")
            return event
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao criar evento: title={event.title}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise

    def save(self, event: Event) -> Event:
        try:
            self._db.commit()
            self._db.refresh(event)
            return event
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao atualizar evento: id={event.id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise

    def delete(self, event_id: str) -> bool:
        """
        Remove o evento. A limpeza dos participantes fica a cargo da
        política referencial do banco (ON DELETE CASCADE).
        """
        try:
            deleted = (
                self._db.query(Event)
                .filter(Event.id == event_id)
                .delete(synchronize_session=False)
            )
            self._db.commit()
            return deleted > 0
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao remover evento: id={event_id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise


class ParticipantRepository:
    """
    Repositório para operações de persistência de participantes.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, participant_id: str) -> Optional[Participant]:
        return self._db.get(Participant, participant_id)

    def count_for_event(self, event_id: str) -> int:
        return (
            self._db.query(func.count(Participant.id))
            .filter(Participant.event_id == event_id)
            .scalar()
        ) or 0

    def count_all(self) -> int:
        return self._db.query(func.count(Participant.id)).scalar() or 0

    def counts_by_event(self) -> Dict[str, int]:
        rows = (
            self._db.query(Participant.event_id, func.count(Participant.id))
            .group_by(Participant.event_id)
            .all()
        )
        return {event_id: count for event_id, count in rows}

    def find_by_email(
        self,
        event_id: str,
        email: str,
        case_insensitive: bool = False,
    ) -> Optional[Participant]:
        query = self._db.query(Participant).filter(Participant.event_id == event_id)
        if case_insensitive:
            query = query.filter(func.lower(Participant.email) == email.lower())
        else:
            query = query.filter(Participant.email == email)
        return query.first()

    def list_for_event(self, event_id: str) -> List[Participant]:
        return (
            self._db.query(Participant)
            .filter(Participant.event_id == event_id)
            .order_by(Participant.registered_at.desc())
            .all()
        )

    def create_participant(
        self,
        event_id: str,
        name: str,
        email: str,
        mobile_number: str,
        class_name: str,
        department: str,
        registered_at: datetime,
        max_participants: Optional[int] = None,
    ) -> Optional[Participant]:
        """
        Cria um novo participante no banco de dados.

        Com max_participants definido a inserção é condicional: o INSERT ... SELECT
        só grava a linha se a contagem, avaliada no mesmo comando, estiver abaixo
        do limite. Retorna None quando nada foi gravado.
        """
        logger.debug(
            f"Criando participante: event_id={event_id}, email={email}, "
            f"max_participants={max_participants}"
        )

        table = Participant.__table__
        values = {
            "id": new_id(),
            "event_id": event_id,
            "name": name,
            "email": email,
            "mobile_number": mobile_number,
            "class": class_name,
            "department": department,
            "registered_at": registered_at,
        }

        try:
            if max_participants is None:
                self._db.execute(insert(table).values(**values))
            else:
                columns = list(values.keys())
                current_count = (
                    select(func.count())
                    .select_from(table)
                    .where(table.c.event_id == event_id)
                    .correlate(None)
                    .scalar_subquery()
                )
                source = select(
                    *[literal(values[column], type_=table.c[column].type).label(column) for column in columns]
                ).where(current_count < max_participants)
                result = self._db.execute(insert(table).from_select(columns, source))
                if result.rowcount == 0:
                    logger.warning(
                        f"Inserção condicional não gravou participante (limite atingido): "
                        f"event_id={event_id}, max_participants={max_participants}"
                    )
                    self._db.rollback()
                    return None

            self._db.commit()
            participant = self.get(values["id"])

            # ASSERT: garantir que o participante foi persistido com ID
            assert participant is not None, (
                "Participant not found after insert! "
                "This indicates a persistence error."
            )

            logger.debug(
                f"Participante criado com sucesso: id={participant.id}, email={participant.email}"
            )
            return participant
        except IntegrityError as e:
            logger.warning(
                f"Erro de integridade ao criar participante: event_id={event_id}, email={email}, "
                f"error={type(e).__name__}"
            )
            self._db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao criar participante: email={email}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise

    def save(self, participant: Participant) -> Participant:
        try:
            self._db.commit()
            self._db.refresh(participant)
            return participant
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao atualizar participante: id={participant.id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise

    def delete(self, participant: Participant) -> None:
        try:
            self._db.delete(participant)
            self._db.commit()
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao remover participante: id={participant.id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise


class RoleRepository:
    """
    Repositório de papéis de usuário (admin / user).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def has_role(self, user_id: str, role: str) -> bool:
        return (
            self._db.query(UserRole.id)
            .filter(UserRole.user_id == user_id, UserRole.role == role)
            .first()
        ) is not None

    def grant(self, user_id: str, role: str) -> UserRole:
        existing = (
            self._db.query(UserRole)
            .filter(UserRole.user_id == user_id, UserRole.role == role)
            .one_or_none()
        )
        if existing:
            return existing
        try:
            user_role = UserRole(user_id=user_id, role=role)
            self._db.add(user_role)
            self._db.commit()
            self._db.refresh(user_role)
            logger.info(f"Papel concedido: user_id={user_id}, role={role}")
            return user_role
        except SQLAlchemyError as e:
            logger.error(
                f"Erro de banco de dados ao conceder papel: user_id={user_id}, role={role}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            self._db.rollback()
            raise
