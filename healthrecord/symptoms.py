"""Symptom tracking with severity bounds and status partitioned lists."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

import structlog
from sqlalchemy.orm import Session

from healthrecord.db.models import Symptom, SymptomStatus
from healthrecord.errors import BadRequestError
from healthrecord.schemas import MessageResponse, SymptomDetail, SymptomListItem
from healthrecord.store import SoftDeleteStore
from healthrecord.time_utils import format_date

logger = structlog.get_logger(__name__)

SEVERITY_MIN = 1
SEVERITY_MAX = 10

store: SoftDeleteStore[Symptom] = SoftDeleteStore(
    Symptom,
    not_found_message="Symptom not found or you do not have access to it",
    order_by=(Symptom.onset_date.desc(),),
)


def check_severity(severity: Optional[int]) -> None:
    """Reject severities outside the inclusive 1..10 scale."""

    if severity is None:
        return
    if isinstance(severity, bool) or not isinstance(severity, int):
        raise BadRequestError("Severity must be an integer")
    if severity < SEVERITY_MIN:
        raise BadRequestError("Severity must be at least 1")
    if severity > SEVERITY_MAX:
        raise BadRequestError("Severity cannot exceed 10")


def _list_item(symptom: Symptom, *, include_status: bool) -> SymptomListItem:
    return SymptomListItem(
        id=symptom.id,
        symptom_name=symptom.symptom_name,
        severity=symptom.severity,
        onset_date=format_date(symptom.onset_date),
        end_date=format_date(symptom.end_date),
        location_on_body=symptom.location_on_body,
        status=symptom.status if include_status else None,
    )


def _detail(symptom: Symptom) -> SymptomDetail:
    return SymptomDetail(
        id=symptom.id,
        symptom_name=symptom.symptom_name,
        severity=symptom.severity,
        onset_date=format_date(symptom.onset_date),
        end_date=format_date(symptom.end_date),
        description=symptom.description,
        location_on_body=symptom.location_on_body,
        triggers=symptom.triggers,
        related_condition=symptom.related_condition,
        related_medications=symptom.related_medications,
        medications_taken=symptom.medications_taken,
        status=symptom.status,
        created_at=symptom.created_at,
        updated_at=symptom.updated_at,
    )


def active_symptoms(session: Session, user_id: int) -> List[Symptom]:
    """All of the user's active symptom records, newest onset first."""

    return store.list_active(session, user_id=user_id)


def list_symptoms(session: Session, user_id: int) -> List[SymptomListItem]:
    return [_list_item(s, include_status=True) for s in active_symptoms(session, user_id)]


def list_symptoms_by_status(
    session: Session, user_id: int, status: SymptomStatus
) -> List[SymptomListItem]:
    """Symptoms in one status; the status is implied and left out of each entry."""

    records = store.list_active(session, Symptom.status == status, user_id=user_id)
    return [_list_item(s, include_status=False) for s in records]


def get_symptom(session: Session, user_id: int, symptom_id: int) -> SymptomDetail:
    return _detail(store.find_active_by_id(session, symptom_id, user_id=user_id))


def add_symptom(session: Session, user_id: int, fields: Mapping[str, Any]) -> MessageResponse:
    check_severity(fields.get("severity"))
    if fields.get("severity") is None:
        raise BadRequestError("Severity is required")
    symptom = store.create(session, user_id=user_id, **fields)
    logger.info("symptom_created", user_id=user_id, symptom_id=symptom.id)
    return MessageResponse(success=True, message="Symptom added successfully", id=symptom.id)


def update_symptom(
    session: Session, user_id: int, symptom_id: int, changes: Mapping[str, Any]
) -> MessageResponse:
    check_severity(changes.get("severity"))
    symptom = store.update(session, symptom_id, changes, user_id=user_id)
    logger.info("symptom_updated", user_id=user_id, symptom_id=symptom.id)
    return MessageResponse(success=True, message="Symptom updated successfully", id=symptom.id)


def delete_symptom(session: Session, user_id: int, symptom_id: int) -> MessageResponse:
    store.soft_delete(session, symptom_id, user_id=user_id)
    return MessageResponse(success=True, message="Symptom deleted successfully")
