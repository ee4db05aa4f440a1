import logging
from typing import Optional
from sqlalchemy.orm import sessionmaker
from ..core.errors import AccessDenied
from ..core.models import Caller
from ..core.persistence import open_session
from ..storage.models import RoleName
from ..storage.repository import RoleRepository

logger = logging.getLogger(__name__)


class IdentityService:
    """
    Consulta de papéis dos usuários.

    A autenticação em si é feita pelo gateway; aqui só respondemos
    "este usuário tem tal papel?" a partir da tabela user_roles.
    """

    def __init__(self, db_session_factory: sessionmaker) -> None:
        self._db_session_factory = db_session_factory

    def has_role(self, user_id: str, role: RoleName) -> bool:
        with open_session(self._db_session_factory) as db:
            return RoleRepository(db).has_role(user_id, role.value)

    def grant_role(self, user_id: str, role: RoleName) -> None:
        with open_session(self._db_session_factory) as db:
            RoleRepository(db).grant(user_id, role.value)

    def require_admin(self, caller: Optional[Caller]) -> Caller:
        """
        Garante que o chamador é administrador.
        """
        if caller is None:
            raise AccessDenied("Operação exige usuário autenticado.")
        if not self.has_role(caller.user_id, RoleName.ADMIN):
            logger.warning(f"Acesso administrativo negado: user_id={caller.user_id}")
            raise AccessDenied("Você não tem permissão para esta operação.")
        return caller
