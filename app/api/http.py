import logging
import time
from datetime import date, datetime, time as time_of_day
from typing import Dict, List, Optional
from urllib.parse import quote
from uuid import uuid4
from fastapi import Depends, FastAPI, HTTPException, Header, Request, Response
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from ..config import AppConfig
from ..core.engine import EventPlatform
from ..core.errors import (
    AccessDenied,
    CampusEventsError,
    DuplicateRegistration,
    EmptyRoster,
    EventNotFound,
    InvalidUpload,
    ParticipantNotFound,
    PersistenceFailure,
    RegistrationClosed,
    ValidationFailed,
)
from ..core.eligibility import ensure_utc
from ..core.event_manager import EventListing
from ..core.models import Caller
from ..core.registration_state import RegistrationOutcome, RegistrationStatus
from ..storage.models import Participant, RoleName

logger = logging.getLogger(__name__)

REGISTRATION_STATUS_CODES = {
    RegistrationStatus.REGISTERED: 201,
    RegistrationStatus.VALIDATION_FAILED: 422,
    RegistrationStatus.CLOSED: 409,
    RegistrationStatus.DUPLICATE: 409,
    RegistrationStatus.EVENT_NOT_FOUND: 404,
    RegistrationStatus.PERSISTENCE_FAILURE: 503,
}


class RegistrantFields(BaseModel):
    """
    Campos do formulário de inscrição. Todos opcionais aqui:
    a validação campo a campo é feita no domínio.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias="class")
    department: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def numbers_as_text(cls, value):
        # Telefone enviado como número JSON; o domínio decide se é válido
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class RegistrationResponse(BaseModel):
    status: str
    message: str
    participant_id: Optional[str] = None
    registered_at: Optional[datetime] = None
    reasons: List[str] = []
    field_errors: Dict[str, str] = {}
    notification_sent: Optional[bool] = None
    notification_error: Optional[str] = None
    capacity_reached: bool = False


class EventFields(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[str] = None
    location: Optional[str] = None
    event_date: Optional[date] = None
    event_time: Optional[time_of_day] = None
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    rules: Optional[str] = None
    location: Optional[str] = None
    event_date: date
    event_time: time_of_day
    registration_deadline: Optional[datetime] = None
    max_participants: Optional[int] = None
    image_url: Optional[str] = None
    participant_count: int
    registration_open: bool
    closure_reasons: List[str] = []
    is_registered: Optional[bool] = None


class EventStatusResponse(BaseModel):
    event_id: str
    registration_open: bool
    closure_reasons: List[str]
    message: str


class DashboardResponse(BaseModel):
    total_events: int
    total_participants: int
    events: List[EventResponse]


class ImageUploadRequest(BaseModel):
    filename: str
    image_base64: str


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    event_id: str
    name: str
    email: str
    mobile_number: str
    class_: str = Field(alias="class")
    department: str
    registered_at: datetime


class RoleGrantRequest(BaseModel):
    user_id: str
    role: RoleName


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware que gera request_id único para cada requisição
    e adiciona aos logs e headers de resposta.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = uuid4().hex[:16]  # 16 caracteres hexadecimais
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request processado: request_id={request_id}, "
            f"method={request.method}, path={request.url.path}, "
            f"status={response.status_code}, duration_ms={duration_ms:.2f}"
        )

        return response


def require_api_key(config: AppConfig, x_api_key: Optional[str]) -> None:
    """
    Valida API key baseado no ambiente.

    Em produção (ENV=prod), sempre exige API key.
    Em desenvolvimento (ENV=dev), só exige se API_KEY estiver configurada.
    """
    expected_key = config.api_key or ""

    if config.env == "prod":
        if not x_api_key or x_api_key != expected_key:
            logger.warning("Tentativa de acesso não autorizado em PRODUÇÃO")
            raise HTTPException(status_code=401, detail="Invalid API key")
    else:
        if expected_key and expected_key.strip():
            if x_api_key != expected_key:
                logger.warning("Tentativa de acesso não autorizado em DEV")
                raise HTTPException(status_code=401, detail="Invalid API key")
        else:
            logger.debug("API_KEY não configurada, aceitando requisição sem autenticação (modo desenvolvimento)")


def resolve_caller(x_user_id: Optional[str], x_user_email: Optional[str]) -> Optional[Caller]:
    """
    Identidade repassada pelo gateway. Sem X-User-Id, o chamador é anônimo.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        return None
    email = (x_user_email or "").strip() or None
    return Caller(user_id=user_id, email=email)


def error_to_http(e: CampusEventsError) -> HTTPException:
    """
    Converte os erros do domínio em respostas HTTP.
    """
    if isinstance(e, ValidationFailed):
        return HTTPException(
            status_code=422,
            detail={"message": "Corrija os campos destacados no formulário.", "field_errors": e.field_errors},
        )
    if isinstance(e, (EventNotFound, ParticipantNotFound, EmptyRoster)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (RegistrationClosed, DuplicateRegistration)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, AccessDenied):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, InvalidUpload):
        return HTTPException(status_code=413 if e.too_large else 400, detail=str(e))
    if isinstance(e, PersistenceFailure):
        return HTTPException(
            status_code=503,
            detail="Banco de dados indisponível. Tente novamente mais tarde.",
        )
    return HTTPException(status_code=500, detail="Erro interno. Tente novamente mais tarde.")


def event_response(listing: EventListing, is_registered: Optional[bool] = None) -> EventResponse:
    event = listing.event
    return EventResponse(
        id=event.id,
        title=event.title,
        description=event.description,
        rules=event.rules,
        location=event.location,
        event_date=event.event_date,
        event_time=event.event_time,
        registration_deadline=(
            ensure_utc(event.registration_deadline) if event.registration_deadline else None
        ),
        max_participants=event.max_participants,
        image_url=event.image_url,
        participant_count=listing.participant_count,
        registration_open=listing.verdict.is_open,
        closure_reasons=sorted(r.value for r in listing.verdict.reasons),
        is_registered=is_registered,
    )


def participant_response(participant: Participant) -> ParticipantResponse:
    return ParticipantResponse(
        id=participant.id,
        event_id=participant.event_id,
        name=participant.name,
        email=participant.email,
        mobile_number=participant.mobile_number,
        class_=participant.class_name,
        department=participant.department,
        registered_at=ensure_utc(participant.registered_at),
    )


def registration_response(outcome: RegistrationOutcome) -> RegistrationResponse:
    return RegistrationResponse(
        status=outcome.status.value,
        message=outcome.message,
        participant_id=outcome.participant_id,
        registered_at=outcome.registered_at,
        reasons=sorted(r.value for r in outcome.reasons),
        field_errors=outcome.field_errors,
        notification_sent=outcome.notification_sent,
        notification_error=outcome.notification_error,
        capacity_reached=outcome.capacity_reached,
    )


def create_app(
    config: Optional[AppConfig] = None,
    platform: Optional[EventPlatform] = None,
) -> FastAPI:
    """
    Cria a aplicação FastAPI e injeta dependências principais (config + plataforma).
    """
    config = config or AppConfig.load_from_env()
    platform = platform or EventPlatform(config=config)

    app = FastAPI(
        title="Campus Events API",
        version="0.1.0",
        description="Eventos do campus: listagem, inscrições e administração.",
    )
    app.state.platform = platform

    app.add_middleware(RequestIDMiddleware)
    app.mount("/media", StaticFiles(directory=config.media_root, check_dir=False), name="media")

    def identify(
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
        x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
    ) -> Optional[Caller]:
        require_api_key(config, x_api_key)
        return resolve_caller(x_user_id, x_user_email)

    def authenticated(caller: Optional[Caller] = Depends(identify)) -> Caller:
        if caller is None:
            raise HTTPException(status_code=401, detail="Identificação do usuário ausente (X-User-Id).")
        return caller

    @app.get("/health")
    def health_check():
        """
        Endpoint de health check para monitoramento e Docker healthchecks.
        """
        db_ok = True
        db = platform.db_session_factory()
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f"Database health check falhou: {e}")
            db_ok = False
        finally:
            db.close()

        feed_ok = platform.change_feed.ping()
        return {
            "status": "healthy" if (db_ok and feed_ok) else "degraded",
            "database": "ok" if db_ok else "error",
            "change_feed": "ok" if feed_ok else "error",
        }

    @app.get("/events", response_model=List[EventResponse])
    def list_events(
        include_closed: bool = False,
        caller: Optional[Caller] = Depends(identify),
    ) -> List[EventResponse]:
        try:
            listings = platform.events.list_upcoming(include_closed=include_closed)
        except CampusEventsError as e:
            raise error_to_http(e)
        return [event_response(listing) for listing in listings]

    @app.get("/events/{event_id}", response_model=EventResponse)
    def get_event(
        event_id: str,
        caller: Optional[Caller] = Depends(identify),
    ) -> EventResponse:
        try:
            listing = platform.events.get_listing(event_id)
            is_registered = (
                platform.events.is_registered(caller, event_id) if caller is not None else None
            )
        except CampusEventsError as e:
            raise error_to_http(e)
        return event_response(listing, is_registered=is_registered)

    @app.get("/events/{event_id}/status", response_model=EventStatusResponse)
    def get_event_status(
        event_id: str,
        caller: Optional[Caller] = Depends(identify),
    ) -> EventStatusResponse:
        try:
            verdict = platform.status_monitor.get_status(event_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        if verdict is None:
            raise HTTPException(status_code=404, detail=f"Evento não encontrado: {event_id}")
        return EventStatusResponse(
            event_id=event_id,
            registration_open=verdict.is_open,
            closure_reasons=sorted(r.value for r in verdict.reasons),
            message=verdict.describe(),
        )

    @app.post("/events/{event_id}/register", response_model=RegistrationResponse)
    def register(
        event_id: str,
        payload: RegistrantFields,
        request: Request,
        response: Response,
        caller: Caller = Depends(authenticated),
    ) -> RegistrationResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        fields = payload.model_dump(by_alias=True)
        if fields.get("email") is None:
            fields["email"] = caller.email

        logger.info(
            f"Recebida inscrição: request_id={request_id}, event_id={event_id}, "
            f"user_id={caller.user_id}"
        )
        outcome = platform.registrations.register(event_id, fields)
        response.status_code = REGISTRATION_STATUS_CODES[outcome.status]
        return registration_response(outcome)

    @app.get("/admin/dashboard", response_model=DashboardResponse)
    def admin_dashboard(caller: Caller = Depends(authenticated)) -> DashboardResponse:
        try:
            dashboard = platform.events.dashboard(caller)
        except CampusEventsError as e:
            raise error_to_http(e)
        return DashboardResponse(
            total_events=dashboard.total_events,
            total_participants=dashboard.total_participants,
            events=[event_response(listing) for listing in dashboard.events],
        )

    @app.post("/admin/events", response_model=EventResponse, status_code=201)
    def admin_create_event(
        payload: EventFields,
        caller: Caller = Depends(authenticated),
    ) -> EventResponse:
        try:
            event = platform.events.create_event(caller, payload.model_dump(exclude_unset=True))
            listing = platform.events.get_listing(event.id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return event_response(listing)

    @app.put("/admin/events/{event_id}", response_model=EventResponse)
    def admin_update_event(
        event_id: str,
        payload: EventFields,
        caller: Caller = Depends(authenticated),
    ) -> EventResponse:
        try:
            platform.events.update_event(caller, event_id, payload.model_dump(exclude_unset=True))
            listing = platform.events.get_listing(event_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return event_response(listing)

    @app.delete("/admin/events/{event_id}", status_code=204)
    def admin_delete_event(
        event_id: str,
        caller: Caller = Depends(authenticated),
    ) -> Response:
        try:
            platform.events.delete_event(caller, event_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return Response(status_code=204)

    @app.post("/admin/events/{event_id}/image", response_model=EventResponse)
    def admin_upload_image(
        event_id: str,
        payload: ImageUploadRequest,
        caller: Caller = Depends(authenticated),
    ) -> EventResponse:
        try:
            platform.events.attach_image(
                caller,
                event_id,
                filename=payload.filename,
                image_base64=payload.image_base64,
                max_base64_chars=config.max_image_base64_chars,
                max_bytes=config.max_image_bytes,
            )
            listing = platform.events.get_listing(event_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return event_response(listing)

    @app.get("/admin/events/{event_id}/participants", response_model=List[ParticipantResponse])
    def admin_list_participants(
        event_id: str,
        search: Optional[str] = None,
        caller: Caller = Depends(authenticated),
    ) -> List[ParticipantResponse]:
        try:
            participants = platform.participants.list_participants(caller, event_id, search)
        except CampusEventsError as e:
            raise error_to_http(e)
        return [participant_response(p) for p in participants]

    @app.get("/admin/events/{event_id}/participants/export")
    def admin_export_participants(
        event_id: str,
        caller: Caller = Depends(authenticated),
    ) -> Response:
        try:
            filename, content = platform.participants.export_participants(caller, event_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
        )

    @app.put("/admin/participants/{participant_id}", response_model=ParticipantResponse)
    def admin_update_participant(
        participant_id: str,
        payload: RegistrantFields,
        caller: Caller = Depends(authenticated),
    ) -> ParticipantResponse:
        try:
            participant = platform.participants.update_participant(
                caller,
                participant_id,
                payload.model_dump(by_alias=True, exclude_unset=True),
            )
        except CampusEventsError as e:
            raise error_to_http(e)
        return participant_response(participant)

    @app.delete("/admin/participants/{participant_id}", status_code=204)
    def admin_delete_participant(
        participant_id: str,
        caller: Caller = Depends(authenticated),
    ) -> Response:
        try:
            platform.participants.delete_participant(caller, participant_id)
        except CampusEventsError as e:
            raise error_to_http(e)
        return Response(status_code=204)

    @app.post("/admin/roles", status_code=201)
    def admin_grant_role(
        payload: RoleGrantRequest,
        caller: Caller = Depends(authenticated),
    ):
        try:
            platform.identity.require_admin(caller)
            platform.identity.grant_role(payload.user_id, payload.role)
        except CampusEventsError as e:
            raise error_to_http(e)
        logger.info(
            f"Papel concedido via API: user_id={payload.user_id}, role={payload.role.value}, "
            f"by={caller.user_id}"
        )
        return {"user_id": payload.user_id, "role": payload.role.value}

    return app
