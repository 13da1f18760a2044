"""SQLAlchemy models for the personal health record schema."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, Time
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ProviderType(str, enum.Enum):
    """Kinds of healthcare provider a user can register."""

    PERSONAL_DOCTOR = "personal_doctor"
    WALK_IN_CLINIC = "walk_in_clinic"
    EMERGENCY_ROOM = "emergency_room"
    URGENT_CARE = "urgent_care"
    SPECIALIST = "specialist"


class SymptomStatus(str, enum.Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    MONITORING = "monitoring"


class MedicationStatus(str, enum.Enum):
    TAKING = "taking"
    DISCONTINUED = "discontinued"


class VisitStatus(str, enum.Enum):
    """Visit lifecycle; only ``scheduled -> completed`` is permitted."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class SoftDeleteMixin:
    """Columns shared by every record: audit timestamps and the soft-delete marker.

    A row whose ``soft_deleted_at`` is set is logically deleted and must be
    invisible to every read path; the row itself is retained.
    """

    created_at = sa.Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        default=_utcnow,
    )
    updated_at = sa.Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        default=_utcnow,
        onupdate=_utcnow,
    )
    soft_deleted_at = sa.Column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.soft_deleted_at is None


class User(SoftDeleteMixin, Base):
    __tablename__ = "users"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    email = sa.Column(String(255), nullable=False, unique=True, index=True)
    password_hash = sa.Column(String(255), nullable=False)
    first_name = sa.Column(String(100), nullable=False)
    last_name = sa.Column(String(100), nullable=False)
    date_of_birth = sa.Column(Date, nullable=False)
    phone = sa.Column(String(20), nullable=True)
    existing_conditions = sa.Column(Text, nullable=True)


class Provider(SoftDeleteMixin, Base):
    __tablename__ = "providers"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider_name = sa.Column(String(200), nullable=False)
    provider_type = sa.Column(
        sa.Enum(ProviderType, name="provider_type", values_callable=_enum_values),
        nullable=False,
        default=ProviderType.PERSONAL_DOCTOR,
    )
    specialty = sa.Column(String(100), nullable=True)
    phone = sa.Column(String(20), nullable=True)
    email = sa.Column(String(255), nullable=True)
    office_address = sa.Column(Text, nullable=True)
    notes = sa.Column(Text, nullable=True)

    __table_args__ = (
        sa.Index("idx_providers_user", "user_id"),
        sa.Index("idx_providers_user_active", "user_id", "soft_deleted_at"),
    )


class Symptom(SoftDeleteMixin, Base):
    __tablename__ = "symptoms"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    symptom_name = sa.Column(String(200), nullable=False)
    severity = sa.Column(Integer, nullable=False)
    onset_date = sa.Column(Date, nullable=False)
    end_date = sa.Column(Date, nullable=True)
    description = sa.Column(Text, nullable=True)
    location_on_body = sa.Column(String(200), nullable=True)
    triggers = sa.Column(Text, nullable=True)
    related_condition = sa.Column(Text, nullable=True)
    related_medications = sa.Column(Text, nullable=True)
    medications_taken = sa.Column(Text, nullable=True)
    status = sa.Column(
        sa.Enum(SymptomStatus, name="symptom_status", values_callable=_enum_values),
        nullable=False,
        default=SymptomStatus.ACTIVE,
    )

    __table_args__ = (
        sa.CheckConstraint("severity BETWEEN 1 AND 10", name="ck_symptoms_severity_range"),
        sa.Index("idx_symptoms_user", "user_id"),
        sa.Index("idx_symptoms_user_active", "user_id", "soft_deleted_at"),
    )


class Visit(SoftDeleteMixin, Base):
    __tablename__ = "visits"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider_id = sa.Column(Integer, ForeignKey("providers.id", ondelete="RESTRICT"), nullable=False)
    visit_date = sa.Column(Date, nullable=False)
    visit_time = sa.Column(Time, nullable=True)
    visit_reason = sa.Column(Text, nullable=False)
    status = sa.Column(
        sa.Enum(VisitStatus, name="visit_status", values_callable=_enum_values),
        nullable=False,
        default=VisitStatus.SCHEDULED,
    )

    provider = relationship(Provider, lazy="joined")

    __table_args__ = (
        sa.Index("idx_visits_user", "user_id"),
        sa.Index("idx_visits_provider", "provider_id"),
        sa.Index("idx_visits_user_active", "user_id", "soft_deleted_at"),
    )


class Medication(SoftDeleteMixin, Base):
    __tablename__ = "medications"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    user_id = sa.Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    prescribing_provider_id = sa.Column(
        Integer, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True
    )
    prescribed_during_visit_id = sa.Column(
        Integer, ForeignKey("visits.id", ondelete="SET NULL"), nullable=True
    )
    medication_name = sa.Column(String(200), nullable=False)
    dosage = sa.Column(String(100), nullable=False)
    frequency = sa.Column(String(100), nullable=False)
    conditions_or_symptoms = sa.Column(Text, nullable=False)
    prescribed_date = sa.Column(Date, nullable=True)
    instructions = sa.Column(Text, nullable=True)
    status = sa.Column(
        sa.Enum(MedicationStatus, name="medication_status", values_callable=_enum_values),
        nullable=False,
        default=MedicationStatus.TAKING,
    )

    prescribing_provider = relationship(Provider, lazy="joined")

    __table_args__ = (
        sa.Index("idx_medications_user", "user_id"),
        sa.Index("idx_medications_provider", "prescribing_provider_id"),
        sa.Index("idx_medications_user_active", "user_id", "soft_deleted_at"),
    )


class VisitPrep(SoftDeleteMixin, Base):
    __tablename__ = "visit_preps"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    visit_id = sa.Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False)
    questions_to_ask = sa.Column(Text, nullable=True)
    symptoms_to_discuss = sa.Column(Text, nullable=True)
    conditions_to_discuss = sa.Column(Text, nullable=True)
    medications_to_discuss = sa.Column(Text, nullable=True)
    goals_for_visit = sa.Column(Text, nullable=True)
    prep_summary_notes = sa.Column(Text, nullable=False)

    __table_args__ = (
        sa.Index(
            "uq_visit_preps_visit_active",
            "visit_id",
            unique=True,
            sqlite_where=sa.text("soft_deleted_at IS NULL"),
            postgresql_where=sa.text("soft_deleted_at IS NULL"),
        ),
    )


class VisitSummary(SoftDeleteMixin, Base):
    __tablename__ = "visit_summaries"

    id = sa.Column(Integer, primary_key=True, autoincrement=True)
    visit_id = sa.Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False)
    new_diagnosis = sa.Column(Text, nullable=True)
    follow_up_instructions = sa.Column(Text, nullable=True)
    doctor_recommendations = sa.Column(Text, nullable=True)
    patient_concerns_addressed = sa.Column(Text, nullable=True)
    patient_concerns_not_addressed = sa.Column(Text, nullable=True)
    visit_summary_notes = sa.Column(Text, nullable=False)

    __table_args__ = (
        sa.Index(
            "uq_visit_summaries_visit_active",
            "visit_id",
            unique=True,
            sqlite_where=sa.text("soft_deleted_at IS NULL"),
            postgresql_where=sa.text("soft_deleted_at IS NULL"),
        ),
    )


__all__ = [
    "Base",
    "ProviderType",
    "SymptomStatus",
    "MedicationStatus",
    "VisitStatus",
    "SoftDeleteMixin",
    "User",
    "Provider",
    "Symptom",
    "Visit",
    "Medication",
    "VisitPrep",
    "VisitSummary",
]
