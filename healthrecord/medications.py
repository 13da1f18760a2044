"""Medication tracking with optional links to a provider and a visit."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import structlog
from sqlalchemy.orm import Session

from healthrecord import providers, visits
from healthrecord.db.models import Medication, MedicationStatus
from healthrecord.schemas import MedicationDetail, MedicationListItem, MessageResponse
from healthrecord.store import SoftDeleteStore, require_owned
from healthrecord.time_utils import format_date

logger = structlog.get_logger(__name__)

VISIT_LINK_NOT_FOUND = "Visit not found or you do not have access to it"

store: SoftDeleteStore[Medication] = SoftDeleteStore(
    Medication,
    not_found_message="Medication not found or you do not have access to it",
    order_by=(Medication.created_at.desc(),),
)


def _provider_fields(medication: Medication, *, detail: bool) -> Dict[str, Any]:
    """Resolve the prescribing provider, flagging it when it has been deleted."""

    provider = medication.prescribing_provider
    if medication.prescribing_provider_id is None or provider is None:
        return {}
    fields: Dict[str, Any] = {
        "prescribing_provider_id": provider.id,
        "provider_name": provider.provider_name,
    }
    if provider.soft_deleted_at is not None:
        fields["provider_deleted"] = True
    if detail:
        fields["provider_type"] = provider.provider_type
        fields["specialty"] = provider.specialty
    return fields


def _list_item(medication: Medication) -> MedicationListItem:
    return MedicationListItem(
        id=medication.id,
        medication_name=medication.medication_name,
        dosage=medication.dosage,
        frequency=medication.frequency,
        status=medication.status,
        instructions=medication.instructions,
        **_provider_fields(medication, detail=False),
    )


def _detail(medication: Medication) -> MedicationDetail:
    return MedicationDetail(
        id=medication.id,
        medication_name=medication.medication_name,
        dosage=medication.dosage,
        frequency=medication.frequency,
        status=medication.status,
        instructions=medication.instructions,
        conditions_or_symptoms=medication.conditions_or_symptoms,
        prescribed_date=format_date(medication.prescribed_date),
        prescribed_during_visit_id=medication.prescribed_during_visit_id,
        created_at=medication.created_at,
        updated_at=medication.updated_at,
        **_provider_fields(medication, detail=True),
    )


def _check_links(session: Session, user_id: int, fields: Mapping[str, Any]) -> None:
    """Linked provider and visit must be active and owned by the acting user."""

    provider_id = fields.get("prescribing_provider_id")
    if provider_id is not None:
        require_owned(session, providers.store, provider_id, user_id, providers.LINK_NOT_FOUND)
    visit_id = fields.get("prescribed_during_visit_id")
    if visit_id is not None:
        require_owned(session, visits.store, visit_id, user_id, VISIT_LINK_NOT_FOUND)


def all_medications(session: Session, user_id: int) -> List[Medication]:
    """Every active medication record, taking or discontinued, newest first."""

    return store.list_active(session, user_id=user_id)


def list_medications(session: Session, user_id: int) -> List[MedicationListItem]:
    return [_list_item(m) for m in all_medications(session, user_id)]


def list_medications_by_status(
    session: Session, user_id: int, status: MedicationStatus
) -> List[MedicationListItem]:
    records = store.list_active(session, Medication.status == status, user_id=user_id)
    return [_list_item(m) for m in records]


def get_medication(session: Session, user_id: int, medication_id: int) -> MedicationDetail:
    return _detail(store.find_active_by_id(session, medication_id, user_id=user_id))


def add_medication(session: Session, user_id: int, fields: Mapping[str, Any]) -> MessageResponse:
    _check_links(session, user_id, fields)
    medication = store.create(session, user_id=user_id, **fields)
    logger.info("medication_created", user_id=user_id, medication_id=medication.id)
    return MessageResponse(success=True, message="Medication added successfully", id=medication.id)


def update_medication(
    session: Session, user_id: int, medication_id: int, changes: Mapping[str, Any]
) -> MessageResponse:
    """Partially update a medication.

    An explicit ``None`` for ``prescribing_provider_id`` or
    ``prescribed_during_visit_id`` clears that link.
    """

    medication = store.find_active_by_id(session, medication_id, user_id=user_id)
    _check_links(session, user_id, changes)
    store.apply_changes(medication, changes)
    session.flush()
    session.refresh(medication)
    logger.info("medication_updated", user_id=user_id, medication_id=medication.id)
    return MessageResponse(success=True, message="Medication updated successfully", id=medication.id)


def delete_medication(session: Session, user_id: int, medication_id: int) -> MessageResponse:
    store.soft_delete(session, medication_id, user_id=user_id)
    return MessageResponse(success=True, message="Medication deleted successfully")
