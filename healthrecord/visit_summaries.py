"""Post-visit summaries, one per visit once it has been completed."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from healthrecord import visits
from healthrecord.db.models import Visit, VisitStatus, VisitSummary
from healthrecord.errors import BadRequestError, NotFoundError
from healthrecord.schemas import MessageResponse, VisitSummaryOut
from healthrecord.store import SoftDeleteStore

logger = structlog.get_logger(__name__)

NOT_FOUND = "Visit summary not found for this visit"
ALREADY_EXISTS = "Visit summary already exists for this visit"

store: SoftDeleteStore[VisitSummary] = SoftDeleteStore(VisitSummary, not_found_message=NOT_FOUND)


def _require_completed(visit: Visit, action: str) -> None:
    if visit.status == VisitStatus.COMPLETED:
        return
    raise BadRequestError(f"Cannot {action} visit summary for a scheduled visit. Visit must be completed first.")


def _active_summary(session: Session, visit_id: int) -> Optional[VisitSummary]:
    return store.find_active_one(session, visit_id=visit_id)


def _require_summary(session: Session, visit_id: int) -> VisitSummary:
    summary = _active_summary(session, visit_id)
    if summary is None:
        raise NotFoundError(NOT_FOUND)
    return summary


def get_visit_summary(session: Session, user_id: int, visit_id: int) -> Optional[VisitSummaryOut]:
    visits.get_owned_visit(session, user_id, visit_id)
    summary = _active_summary(session, visit_id)
    if summary is None:
        return None
    return VisitSummaryOut.model_validate(summary)


def create_visit_summary(session: Session, user_id: int, fields: Mapping[str, Any]) -> MessageResponse:
    data: Dict[str, Any] = dict(fields)
    visit = visits.get_owned_visit(session, user_id, data["visit_id"])
    _require_completed(visit, "create")
    if _active_summary(session, visit.id) is not None:
        raise BadRequestError(ALREADY_EXISTS)
    try:
        summary = store.create(session, **data)
    except IntegrityError as exc:
        # a concurrent create claimed the visit first
        session.rollback()
        raise BadRequestError(ALREADY_EXISTS) from exc
    logger.info("visit_summary_created", user_id=user_id, visit_id=visit.id, visit_summary_id=summary.id)
    return MessageResponse(success=True, message="Visit summary created successfully", id=summary.id)


def update_visit_summary(
    session: Session, user_id: int, visit_id: int, changes: Mapping[str, Any]
) -> MessageResponse:
    visit = visits.get_owned_visit(session, user_id, visit_id)
    _require_completed(visit, "update")
    summary = _require_summary(session, visit.id)
    data = {k: v for k, v in changes.items() if k != "visit_id"}
    store.apply_changes(summary, data)
    session.flush()
    logger.info("visit_summary_updated", user_id=user_id, visit_id=visit.id, visit_summary_id=summary.id)
    return MessageResponse(success=True, message="Visit summary updated successfully", id=summary.id)


def delete_visit_summary(session: Session, user_id: int, visit_id: int) -> MessageResponse:
    visit = visits.get_owned_visit(session, user_id, visit_id)
    _require_completed(visit, "delete")
    summary = _require_summary(session, visit.id)
    store.soft_delete(session, summary.id, visit_id=visit.id)
    return MessageResponse(success=True, message="Visit summary deleted successfully")
