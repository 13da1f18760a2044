"""Visit scheduling and the one-way ``scheduled -> completed`` lifecycle.

Visits always reference one of the user's providers.  When that provider is
soft deleted the visit stays in the database but is left out of every visit
list, and its detail view reports the provider as unavailable.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import structlog
from sqlalchemy.orm import Session

from healthrecord import providers
from healthrecord.db.models import Visit, VisitStatus
from healthrecord.errors import BadRequestError, NotFoundError
from healthrecord.schemas import MessageResponse, VisitDetail, VisitListItem
from healthrecord.store import SoftDeleteStore, require_owned
from healthrecord.time_utils import format_date, format_time

logger = structlog.get_logger(__name__)

NOT_FOUND = "Visit not found or you do not have access to it"
PROVIDER_UNAVAILABLE = "Provider for this visit is no longer available"
CANNOT_REVERT = "Cannot change a completed visit back to scheduled"

store: SoftDeleteStore[Visit] = SoftDeleteStore(
    Visit,
    not_found_message=NOT_FOUND,
    order_by=(Visit.visit_date.desc(), Visit.visit_time.desc()),
)


def _has_active_provider(visit: Visit) -> bool:
    return visit.provider is not None and visit.provider.soft_deleted_at is None


def _list_item(visit: Visit, *, include_status: bool) -> VisitListItem:
    provider = visit.provider
    return VisitListItem(
        id=visit.id,
        provider_id=visit.provider_id,
        provider_name=provider.provider_name,
        provider_type=provider.provider_type,
        specialty=provider.specialty,
        visit_date=format_date(visit.visit_date),
        visit_time=format_time(visit.visit_time),
        status=visit.status if include_status else None,
    )


def _detail(visit: Visit) -> VisitDetail:
    provider = visit.provider
    return VisitDetail(
        id=visit.id,
        provider_id=visit.provider_id,
        provider_name=provider.provider_name,
        provider_type=provider.provider_type,
        specialty=provider.specialty,
        phone=provider.phone,
        office_address=provider.office_address,
        visit_date=format_date(visit.visit_date),
        visit_time=format_time(visit.visit_time),
        visit_reason=visit.visit_reason,
        status=visit.status,
    )


def _listing(records: List[Visit], *, include_status: bool) -> List[VisitListItem]:
    return [_list_item(v, include_status=include_status) for v in records if _has_active_provider(v)]


def get_owned_visit(session: Session, user_id: int, visit_id: int) -> Visit:
    """Return an active visit of ``user_id`` or raise :class:`NotFoundError`."""

    return store.find_active_by_id(session, visit_id, user_id=user_id)


def list_visits(session: Session, user_id: int) -> List[VisitListItem]:
    return _listing(store.list_active(session, user_id=user_id), include_status=True)


def list_upcoming_visits(session: Session, user_id: int) -> List[VisitListItem]:
    records = store.list_active(
        session,
        Visit.status == VisitStatus.SCHEDULED,
        order_by=(Visit.visit_date.asc(), Visit.visit_time.asc()),
        user_id=user_id,
    )
    return _listing(records, include_status=False)


def list_completed_visits(session: Session, user_id: int) -> List[VisitListItem]:
    records = store.list_active(session, Visit.status == VisitStatus.COMPLETED, user_id=user_id)
    return _listing(records, include_status=False)


def get_visit(session: Session, user_id: int, visit_id: int) -> VisitDetail:
    visit = get_owned_visit(session, user_id, visit_id)
    if not _has_active_provider(visit):
        raise NotFoundError(PROVIDER_UNAVAILABLE)
    return _detail(visit)


def schedule_visit(session: Session, user_id: int, fields: Mapping[str, Any]) -> MessageResponse:
    """Create a visit in the ``scheduled`` state with one of the user's providers."""

    data: Dict[str, Any] = dict(fields)
    require_owned(session, providers.store, data["provider_id"], user_id, providers.LINK_NOT_FOUND)
    data["status"] = VisitStatus.SCHEDULED
    visit = store.create(session, user_id=user_id, **data)
    logger.info("visit_scheduled", user_id=user_id, visit_id=visit.id, provider_id=visit.provider_id)
    return MessageResponse(success=True, message="Visit scheduled successfully", id=visit.id)


def check_transition(current: VisitStatus, requested: VisitStatus) -> None:
    """Only ``scheduled -> completed`` may change a visit's status."""

    if current == VisitStatus.COMPLETED and requested == VisitStatus.SCHEDULED:
        raise BadRequestError(CANNOT_REVERT)


def update_visit(
    session: Session, user_id: int, visit_id: int, changes: Mapping[str, Any]
) -> MessageResponse:
    """Partially update a visit.

    Date, time and reason may change in either status.  Changing the provider
    re-checks ownership of the new provider.
    """

    visit = get_owned_visit(session, user_id, visit_id)
    previous = visit.status
    requested = changes.get("status")
    if requested is not None:
        check_transition(previous, VisitStatus(requested))
    provider_id = changes.get("provider_id")
    if provider_id is not None and provider_id != visit.provider_id:
        require_owned(session, providers.store, provider_id, user_id, providers.LINK_NOT_FOUND)

    store.apply_changes(visit, changes)
    session.flush()
    session.refresh(visit)
    if visit.status != previous:
        logger.info(
            "visit_status_changed",
            user_id=user_id,
            visit_id=visit.id,
            previous=previous.value,
            status=visit.status.value,
        )
    logger.info("visit_updated", user_id=user_id, visit_id=visit.id)
    return MessageResponse(success=True, message="Visit updated successfully", id=visit.id)


def delete_visit(session: Session, user_id: int, visit_id: int) -> MessageResponse:
    store.soft_delete(session, visit_id, user_id=user_id)
    return MessageResponse(success=True, message="Visit removed successfully")
