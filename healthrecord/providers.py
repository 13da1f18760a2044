"""Healthcare providers registered by a user."""

from __future__ import annotations

from typing import Any, List, Mapping

import structlog
from sqlalchemy.orm import Session

from healthrecord.db.models import Provider
from healthrecord.schemas import MessageResponse, ProviderDetail, ProviderMutationResponse, ProviderSummary
from healthrecord.store import SoftDeleteStore

logger = structlog.get_logger(__name__)

NOT_FOUND = "Provider not found"
LINK_NOT_FOUND = "Provider not found or you do not have access to it"

store: SoftDeleteStore[Provider] = SoftDeleteStore(
    Provider,
    not_found_message=NOT_FOUND,
    order_by=(Provider.provider_name.asc(),),
)


def _summary(provider: Provider) -> ProviderSummary:
    return ProviderSummary(
        id=provider.id,
        provider_name=provider.provider_name,
        provider_type=provider.provider_type,
        specialty=provider.specialty,
    )


def _detail(provider: Provider) -> ProviderDetail:
    return ProviderDetail(
        id=provider.id,
        provider_name=provider.provider_name,
        provider_type=provider.provider_type,
        specialty=provider.specialty,
        phone=provider.phone,
        email=provider.email,
        office_address=provider.office_address,
        notes=provider.notes,
        created_at=provider.created_at,
        updated_at=provider.updated_at,
    )


def list_providers(session: Session, user_id: int) -> List[ProviderSummary]:
    return [_summary(p) for p in store.list_active(session, user_id=user_id)]


def get_provider(session: Session, user_id: int, provider_id: int) -> ProviderDetail:
    return _detail(store.find_active_by_id(session, provider_id, user_id=user_id))


def create_provider(session: Session, user_id: int, fields: Mapping[str, Any]) -> ProviderMutationResponse:
    provider = store.create(session, user_id=user_id, **fields)
    logger.info("provider_created", user_id=user_id, provider_id=provider.id)
    return ProviderMutationResponse(
        success=True,
        message="Provider added successfully",
        id=provider.id,
        provider=_detail(provider),
    )


def update_provider(
    session: Session, user_id: int, provider_id: int, changes: Mapping[str, Any]
) -> ProviderMutationResponse:
    provider = store.update(session, provider_id, changes, user_id=user_id)
    logger.info("provider_updated", user_id=user_id, provider_id=provider.id)
    return ProviderMutationResponse(
        success=True,
        message="Provider updated successfully",
        id=provider.id,
        provider=_detail(provider),
    )


def delete_provider(session: Session, user_id: int, provider_id: int) -> MessageResponse:
    """Soft delete a provider.

    Visits and medications keep their link; visits of a deleted provider drop
    out of the visit lists and medications flag the provider as deleted.
    """

    store.soft_delete(session, provider_id, user_id=user_id)
    return MessageResponse(success=True, message="Provider deleted successfully")
