"""Pre-visit preparation notes, one per visit while it is still scheduled."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from healthrecord import users, visits
from healthrecord.db.models import Visit, VisitPrep, VisitStatus
from healthrecord.errors import BadRequestError, NotFoundError
from healthrecord.schemas import MessageResponse, UserConditionsResponse, VisitPrepOut
from healthrecord.store import SoftDeleteStore

logger = structlog.get_logger(__name__)

NOT_FOUND = "Visit preparation not found for this visit"
ALREADY_EXISTS = "Visit preparation already exists for this visit"

store: SoftDeleteStore[VisitPrep] = SoftDeleteStore(VisitPrep, not_found_message=NOT_FOUND)


def _require_scheduled(visit: Visit, action: str) -> None:
    if visit.status != VisitStatus.SCHEDULED:
        raise BadRequestError(f"Cannot {action} visit preparation for a completed visit")


def _active_prep(session: Session, visit_id: int) -> Optional[VisitPrep]:
    return store.find_active_one(session, visit_id=visit_id)


def _require_prep(session: Session, visit_id: int) -> VisitPrep:
    prep = _active_prep(session, visit_id)
    if prep is None:
        raise NotFoundError(NOT_FOUND)
    return prep


def get_visit_prep(session: Session, user_id: int, visit_id: int) -> Optional[VisitPrepOut]:
    """Return the visit's preparation or ``None`` when none has been written yet."""

    visits.get_owned_visit(session, user_id, visit_id)
    prep = _active_prep(session, visit_id)
    if prep is None:
        return None
    return VisitPrepOut.model_validate(prep)


def create_visit_prep(session: Session, user_id: int, fields: Mapping[str, Any]) -> MessageResponse:
    data: Dict[str, Any] = dict(fields)
    visit = visits.get_owned_visit(session, user_id, data["visit_id"])
    _require_scheduled(visit, "create")
    if _active_prep(session, visit.id) is not None:
        raise BadRequestError(ALREADY_EXISTS)
    try:
        prep = store.create(session, **data)
    except IntegrityError as exc:
        # a concurrent create claimed the visit first
        session.rollback()
        raise BadRequestError(ALREADY_EXISTS) from exc
    logger.info("visit_prep_created", user_id=user_id, visit_id=visit.id, visit_prep_id=prep.id)
    return MessageResponse(success=True, message="Visit preparation created successfully", id=prep.id)


def update_visit_prep(
    session: Session, user_id: int, visit_id: int, changes: Mapping[str, Any]
) -> MessageResponse:
    visit = visits.get_owned_visit(session, user_id, visit_id)
    _require_scheduled(visit, "update")
    prep = _require_prep(session, visit.id)
    data = {k: v for k, v in changes.items() if k != "visit_id"}
    store.apply_changes(prep, data)
    session.flush()
    logger.info("visit_prep_updated", user_id=user_id, visit_id=visit.id, visit_prep_id=prep.id)
    return MessageResponse(success=True, message="Visit preparation updated successfully", id=prep.id)


def delete_visit_prep(session: Session, user_id: int, visit_id: int) -> MessageResponse:
    visit = visits.get_owned_visit(session, user_id, visit_id)
    _require_scheduled(visit, "delete")
    prep = _require_prep(session, visit.id)
    store.soft_delete(session, prep.id, visit_id=visit.id)
    return MessageResponse(success=True, message="Visit preparation deleted successfully")


def parse_conditions(raw: Optional[str]) -> List[str]:
    """Split a comma separated conditions string, dropping blank entries."""

    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_user_conditions(session: Session, user_id: int) -> UserConditionsResponse:
    """Project the user's free-text ``existing_conditions`` into a list."""

    user = users.get_active_user(session, user_id)
    conditions = parse_conditions(user.existing_conditions)
    if not conditions:
        return UserConditionsResponse(has_conditions=False)
    return UserConditionsResponse(has_conditions=True, conditions=conditions)
