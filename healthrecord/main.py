"""FastAPI application exposing the personal health record API."""

from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

import sqlalchemy as sa
import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog.contextvars import bind_contextvars, unbind_contextvars

from healthrecord import (
    __version__,
    medications,
    providers,
    symptoms,
    users,
    visit_prep,
    visit_questions,
    visit_summaries,
    visits,
)
from healthrecord.auth import get_current_user_id
from healthrecord.db import Base, engine, get_database_settings, get_session
from healthrecord.db.models import MedicationStatus, SymptomStatus
from healthrecord.errors import HealthRecordError
from healthrecord.metrics import REQUEST_COUNTER, REQUEST_LATENCY, normalise_path_for_metrics
from healthrecord.schemas import (
    AuthResponse,
    LoginRequest,
    MedicationCreate,
    MedicationDetail,
    MedicationListItem,
    MedicationUpdate,
    MessageResponse,
    ProfileOut,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    ProviderCreate,
    ProviderDetail,
    ProviderMutationResponse,
    ProviderSummary,
    ProviderUpdate,
    RegisterRequest,
    SymptomCreate,
    SymptomDetail,
    SymptomListItem,
    SymptomUpdate,
    UserConditionsResponse,
    VisitCreate,
    VisitDetail,
    VisitListItem,
    VisitPrepCreate,
    VisitPrepOut,
    VisitPrepUpdate,
    VisitQuestionsResponse,
    VisitSummaryCreate,
    VisitSummaryOut,
    VisitSummaryUpdate,
    VisitUpdate,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(message)s")

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

START_TIME = time.time()


class ErrorDetail(BaseModel):
    """Details describing an error response payload."""

    code: int | str | None = None
    message: str
    details: Any | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope."""

    success: Literal[False] = False
    error: ErrorDetail


def _error_response(status_code: int, message: str, details: Any = None, headers=None) -> JSONResponse:
    payload = ErrorResponse(error=ErrorDetail(code=status_code, message=message, details=details))
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(exclude_none=True),
        headers=headers,
    )


def _validation_details(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic errors into per-field messages for form display."""

    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({"field": ".".join(loc) or "body", "message": message})
    return details


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("lifespan_startup", version=__version__)
    if get_database_settings().is_sqlite:
        # sqlite installs have no separate migration step
        Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        logger.info("lifespan_shutdown_complete", uptime=time.time() - START_TIME)


app = FastAPI(title="HealthRecord API", version=__version__, lifespan=lifespan)

allowed_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
origins = [o.strip() for o in allowed_origins.split(",") if o.strip()]
allow_all = any(o in {"*", "wildcard"} for o in origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else origins,
    allow_credentials=not allow_all,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def track_http_metrics(request: Request, call_next):
    """Emit Prometheus counters and histograms for each request."""

    start = time.perf_counter()
    normalised = normalise_path_for_metrics(request.url.path)
    try:
        response = await call_next(request)
    except Exception:
        REQUEST_COUNTER.labels(request.method, normalised, "500").inc()
        REQUEST_LATENCY.labels(request.method, normalised).observe(time.perf_counter() - start)
        raise
    REQUEST_COUNTER.labels(request.method, normalised, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, normalised).observe(time.perf_counter() - start)
    return response


@app.middleware("http")
async def inject_trace_id(request: Request, call_next):
    """Attach or propagate a trace identifier for each request."""

    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
    bind_contextvars(trace_id=trace_id, path=request.url.path, method=request.method)
    request.state.trace_id = trace_id
    response = None
    try:
        response = await call_next(request)
        return response
    except Exception:
        logger.exception("request_failed", path=request.url.path, method=request.method)
        raise
    finally:
        if response is not None:
            response.headers["X-Trace-Id"] = trace_id
        unbind_contextvars("trace_id", "path", "method")


@app.exception_handler(HealthRecordError)
async def health_record_error_handler(request: Request, exc: HealthRecordError) -> JSONResponse:
    """Render domain errors raised by the services."""

    if exc.status_code >= 500:
        logger.warning("request_error", status=exc.status_code, error=exc.message)
    else:
        logger.info("request_rejected", status=exc.status_code, error=exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return _error_response(exc.status_code, exc.message, exc.details, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Convert ``HTTPException`` instances into the standard error envelope."""

    return _error_response(exc.status_code, str(exc.detail), headers=dict(exc.headers or {}))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report invalid input as 400 with one message per offending field."""

    details = _validation_details(exc.errors())
    message = "; ".join(f"{d['field']}: {d['message']}" for d in details) or "Invalid request"
    return _error_response(status.HTTP_400_BAD_REQUEST, message, details)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"])
def health(session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Lightweight health check reporting uptime and database reachability."""

    try:
        session.execute(sa.text("SELECT 1"))
        db_ok = True
    except sa.exc.SQLAlchemyError:
        logger.warning("health_db_unreachable")
        db_ok = False
    return {"status": "ok", "db": db_ok, "uptime": time.time() - START_TIME}


@app.get("/metrics", tags=["system"], response_model=None)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@app.post("/users/register", response_model=AuthResponse, response_model_exclude_none=True, status_code=201, tags=["users"])
def register(model: RegisterRequest, session: Session = Depends(get_session)):
    return users.register(session, model.model_dump())


@app.post("/users/login", response_model=AuthResponse, response_model_exclude_none=True, tags=["users"])
def login(model: LoginRequest, session: Session = Depends(get_session)):
    return users.login(session, model.email, model.password)


@app.get("/users/profile", response_model=ProfileOut, response_model_exclude_none=True, tags=["users"])
def get_profile(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return users.get_profile(session, user_id)


@app.put("/users/profile", response_model=ProfileUpdateResponse, response_model_exclude_none=True, tags=["users"])
def update_profile(
    model: ProfileUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return users.update_profile(session, user_id, model.model_dump(exclude_unset=True))


@app.post("/users/deactivate", response_model=MessageResponse, response_model_exclude_none=True, tags=["users"])
def deactivate_account(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return users.deactivate_account(session, user_id)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


@app.get("/providers", response_model=List[ProviderSummary], response_model_exclude_none=True, tags=["providers"])
def list_providers(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return providers.list_providers(session, user_id)


@app.post(
    "/providers",
    response_model=ProviderMutationResponse,
    response_model_exclude_none=True,
    status_code=201,
    tags=["providers"],
)
def create_provider(
    model: ProviderCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return providers.create_provider(session, user_id, model.model_dump())


@app.get("/providers/{provider_id}", response_model=ProviderDetail, response_model_exclude_none=True, tags=["providers"])
def get_provider(
    provider_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return providers.get_provider(session, user_id, provider_id)


@app.put(
    "/providers/{provider_id}",
    response_model=ProviderMutationResponse,
    response_model_exclude_none=True,
    tags=["providers"],
)
def update_provider(
    provider_id: int,
    model: ProviderUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return providers.update_provider(session, user_id, provider_id, model.model_dump(exclude_unset=True))


@app.delete("/providers/{provider_id}", response_model=MessageResponse, response_model_exclude_none=True, tags=["providers"])
def delete_provider(
    provider_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return providers.delete_provider(session, user_id, provider_id)


# ---------------------------------------------------------------------------
# Symptoms
# ---------------------------------------------------------------------------


@app.get("/symptoms", response_model=List[SymptomListItem], response_model_exclude_none=True, tags=["symptoms"])
def list_symptoms(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return symptoms.list_symptoms(session, user_id)


@app.get("/symptoms/active", response_model=List[SymptomListItem], response_model_exclude_none=True, tags=["symptoms"])
def list_active_symptoms(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return symptoms.list_symptoms_by_status(session, user_id, SymptomStatus.ACTIVE)


@app.get("/symptoms/resolved", response_model=List[SymptomListItem], response_model_exclude_none=True, tags=["symptoms"])
def list_resolved_symptoms(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return symptoms.list_symptoms_by_status(session, user_id, SymptomStatus.RESOLVED)


@app.post("/symptoms", response_model=MessageResponse, response_model_exclude_none=True, status_code=201, tags=["symptoms"])
def add_symptom(
    model: SymptomCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return symptoms.add_symptom(session, user_id, model.model_dump())


@app.get("/symptoms/{symptom_id}", response_model=SymptomDetail, response_model_exclude_none=True, tags=["symptoms"])
def get_symptom(
    symptom_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return symptoms.get_symptom(session, user_id, symptom_id)


@app.put("/symptoms/{symptom_id}", response_model=MessageResponse, response_model_exclude_none=True, tags=["symptoms"])
def update_symptom(
    symptom_id: int,
    model: SymptomUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return symptoms.update_symptom(session, user_id, symptom_id, model.model_dump(exclude_unset=True))


@app.delete("/symptoms/{symptom_id}", response_model=MessageResponse, response_model_exclude_none=True, tags=["symptoms"])
def delete_symptom(
    symptom_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return symptoms.delete_symptom(session, user_id, symptom_id)


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------


@app.get("/medications", response_model=List[MedicationListItem], response_model_exclude_none=True, tags=["medications"])
def list_medications(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return medications.list_medications(session, user_id)


@app.get(
    "/medications/active",
    response_model=List[MedicationListItem],
    response_model_exclude_none=True,
    tags=["medications"],
)
def list_taking_medications(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return medications.list_medications_by_status(session, user_id, MedicationStatus.TAKING)


@app.get(
    "/medications/discontinued",
    response_model=List[MedicationListItem],
    response_model_exclude_none=True,
    tags=["medications"],
)
def list_discontinued_medications(
    user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)
):
    return medications.list_medications_by_status(session, user_id, MedicationStatus.DISCONTINUED)


@app.post(
    "/medications",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    status_code=201,
    tags=["medications"],
)
def add_medication(
    model: MedicationCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return medications.add_medication(session, user_id, model.model_dump())


@app.get(
    "/medications/{medication_id}",
    response_model=MedicationDetail,
    response_model_exclude_none=True,
    tags=["medications"],
)
def get_medication(
    medication_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return medications.get_medication(session, user_id, medication_id)


@app.put(
    "/medications/{medication_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["medications"],
)
def update_medication(
    medication_id: int,
    model: MedicationUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return medications.update_medication(session, user_id, medication_id, model.model_dump(exclude_unset=True))


@app.delete(
    "/medications/{medication_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["medications"],
)
def delete_medication(
    medication_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return medications.delete_medication(session, user_id, medication_id)


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------


@app.get("/visits", response_model=List[VisitListItem], response_model_exclude_none=True, tags=["visits"])
def list_visits(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return visits.list_visits(session, user_id)


@app.get("/visits/upcoming", response_model=List[VisitListItem], response_model_exclude_none=True, tags=["visits"])
def list_upcoming_visits(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return visits.list_upcoming_visits(session, user_id)


@app.get("/visits/completed", response_model=List[VisitListItem], response_model_exclude_none=True, tags=["visits"])
def list_completed_visits(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return visits.list_completed_visits(session, user_id)


@app.post("/visits", response_model=MessageResponse, response_model_exclude_none=True, status_code=201, tags=["visits"])
def schedule_visit(
    model: VisitCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visits.schedule_visit(session, user_id, model.model_dump())


@app.get("/visits/{visit_id}", response_model=VisitDetail, response_model_exclude_none=True, tags=["visits"])
def get_visit(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visits.get_visit(session, user_id, visit_id)


@app.put("/visits/{visit_id}", response_model=MessageResponse, response_model_exclude_none=True, tags=["visits"])
def update_visit(
    visit_id: int,
    model: VisitUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visits.update_visit(session, user_id, visit_id, model.model_dump(exclude_unset=True))


@app.delete("/visits/{visit_id}", response_model=MessageResponse, response_model_exclude_none=True, tags=["visits"])
def delete_visit(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visits.delete_visit(session, user_id, visit_id)


# ---------------------------------------------------------------------------
# Visit preparation
# ---------------------------------------------------------------------------


@app.get(
    "/visit-prep/conditions",
    response_model=UserConditionsResponse,
    response_model_exclude_none=True,
    tags=["visit-prep"],
)
def get_user_conditions(user_id: int = Depends(get_current_user_id), session: Session = Depends(get_session)):
    return visit_prep.get_user_conditions(session, user_id)


@app.get(
    "/visit-prep/visit/{visit_id}",
    response_model=Optional[VisitPrepOut],
    response_model_exclude_none=True,
    tags=["visit-prep"],
)
def get_visit_prep(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_prep.get_visit_prep(session, user_id, visit_id)


@app.post(
    "/visit-prep",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    status_code=201,
    tags=["visit-prep"],
)
def create_visit_prep(
    model: VisitPrepCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_prep.create_visit_prep(session, user_id, model.model_dump())


@app.put(
    "/visit-prep/visit/{visit_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["visit-prep"],
)
def update_visit_prep(
    visit_id: int,
    model: VisitPrepUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_prep.update_visit_prep(session, user_id, visit_id, model.model_dump(exclude_unset=True))


@app.delete(
    "/visit-prep/visit/{visit_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["visit-prep"],
)
def delete_visit_prep(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_prep.delete_visit_prep(session, user_id, visit_id)


# ---------------------------------------------------------------------------
# Visit summaries
# ---------------------------------------------------------------------------


@app.get(
    "/visit-summaries/visit/{visit_id}",
    response_model=Optional[VisitSummaryOut],
    response_model_exclude_none=True,
    tags=["visit-summaries"],
)
def get_visit_summary(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_summaries.get_visit_summary(session, user_id, visit_id)


@app.post(
    "/visit-summaries",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    status_code=201,
    tags=["visit-summaries"],
)
def create_visit_summary(
    model: VisitSummaryCreate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_summaries.create_visit_summary(session, user_id, model.model_dump())


@app.put(
    "/visit-summaries/visit/{visit_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["visit-summaries"],
)
def update_visit_summary(
    visit_id: int,
    model: VisitSummaryUpdate,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_summaries.update_visit_summary(session, user_id, visit_id, model.model_dump(exclude_unset=True))


@app.delete(
    "/visit-summaries/visit/{visit_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    tags=["visit-summaries"],
)
def delete_visit_summary(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_summaries.delete_visit_summary(session, user_id, visit_id)


# ---------------------------------------------------------------------------
# AI visit questions
# ---------------------------------------------------------------------------


@app.post(
    "/anthropic/generate-visit-questions/{visit_id}",
    response_model=VisitQuestionsResponse,
    tags=["ai"],
)
def generate_visit_questions(
    visit_id: int,
    user_id: int = Depends(get_current_user_id),
    session: Session = Depends(get_session),
):
    return visit_questions.generate_visit_questions(session, user_id, visit_id)
