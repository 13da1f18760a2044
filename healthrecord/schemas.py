"""Pydantic request and response models for the HTTP API."""

from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from healthrecord.db.models import MedicationStatus, ProviderType, SymptomStatus, VisitStatus

_VISIT_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d):([0-5]\d)$")
PASSWORD_MAX_BYTES = 72


def _check_severity(value: Optional[int]) -> Optional[int]:
    if value is None:
        return value
    if value < 1:
        raise ValueError("Severity must be at least 1")
    if value > 10:
        raise ValueError("Severity cannot exceed 10")
    return value


def _parse_visit_time(value: object) -> Optional[time]:
    if value is None or isinstance(value, time):
        return value
    if not isinstance(value, str) or not _VISIT_TIME_RE.match(value):
        raise ValueError("Visit time must be in HH:MM:SS format")
    return time.fromisoformat(value)


class MessageResponse(BaseModel):
    """Outcome of a mutating request."""

    success: bool
    message: str
    id: Optional[int] = None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    date_of_birth: date
    phone: Optional[str] = Field(default=None, max_length=20)
    existing_conditions: Optional[str] = None

    @field_validator("password")
    @classmethod
    def check_password_length(cls, value: str) -> str:
        # bcrypt ignores everything past the first 72 bytes
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError("Password cannot exceed 72 bytes")
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdateRequest(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    existing_conditions: Optional[str] = None


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    date_of_birth: str
    phone: Optional[str] = None
    existing_conditions: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AuthResponse(BaseModel):
    user: UserOut
    token: str


class ProfileOut(BaseModel):
    email: str
    first_name: str
    last_name: str
    date_of_birth: str
    phone: Optional[str] = None
    existing_conditions: Optional[str] = None


class ProfileUpdateResponse(MessageResponse):
    user: ProfileOut


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ProviderCreate(BaseModel):
    provider_name: str = Field(min_length=1, max_length=200)
    provider_type: ProviderType
    specialty: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    office_address: Optional[str] = None
    notes: Optional[str] = None


class ProviderUpdate(BaseModel):
    provider_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    provider_type: Optional[ProviderType] = None
    specialty: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email: Optional[EmailStr] = None
    office_address: Optional[str] = None
    notes: Optional[str] = None


class ProviderSummary(BaseModel):
    id: int
    provider_name: str
    provider_type: ProviderType
    specialty: Optional[str] = None


class ProviderDetail(ProviderSummary):
    phone: Optional[str] = None
    email: Optional[str] = None
    office_address: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProviderMutationResponse(MessageResponse):
    provider: ProviderDetail


# ---------------------------------------------------------------------------
# Symptoms
# ---------------------------------------------------------------------------


class SymptomCreate(BaseModel):
    symptom_name: str = Field(min_length=1, max_length=200)
    severity: int
    onset_date: date
    description: Optional[str] = None
    end_date: Optional[date] = None
    location_on_body: Optional[str] = Field(default=None, max_length=200)
    triggers: Optional[str] = None
    related_condition: Optional[str] = None
    related_medications: Optional[str] = None
    medications_taken: Optional[str] = None
    status: SymptomStatus = SymptomStatus.ACTIVE

    @field_validator("severity")
    @classmethod
    def check_severity(cls, value: Optional[int]) -> Optional[int]:
        return _check_severity(value)


class SymptomUpdate(BaseModel):
    symptom_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    severity: Optional[int] = None
    onset_date: Optional[date] = None
    description: Optional[str] = None
    end_date: Optional[date] = None
    location_on_body: Optional[str] = Field(default=None, max_length=200)
    triggers: Optional[str] = None
    related_condition: Optional[str] = None
    related_medications: Optional[str] = None
    medications_taken: Optional[str] = None
    status: Optional[SymptomStatus] = None

    @field_validator("severity")
    @classmethod
    def check_severity(cls, value: Optional[int]) -> Optional[int]:
        return _check_severity(value)


class SymptomListItem(BaseModel):
    id: int
    symptom_name: str
    severity: int
    onset_date: str
    end_date: Optional[str] = None
    location_on_body: Optional[str] = None
    status: Optional[SymptomStatus] = None


class SymptomDetail(BaseModel):
    id: int
    symptom_name: str
    severity: int
    onset_date: str
    end_date: Optional[str] = None
    description: Optional[str] = None
    location_on_body: Optional[str] = None
    triggers: Optional[str] = None
    related_condition: Optional[str] = None
    related_medications: Optional[str] = None
    medications_taken: Optional[str] = None
    status: SymptomStatus
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Medications
# ---------------------------------------------------------------------------


class MedicationCreate(BaseModel):
    prescribing_provider_id: Optional[int] = None
    prescribed_during_visit_id: Optional[int] = None
    medication_name: str = Field(min_length=1, max_length=200)
    dosage: str = Field(min_length=1, max_length=100)
    frequency: str = Field(min_length=1, max_length=100)
    conditions_or_symptoms: str = Field(min_length=1)
    prescribed_date: Optional[date] = None
    instructions: Optional[str] = None
    status: MedicationStatus = MedicationStatus.TAKING


class MedicationUpdate(BaseModel):
    prescribing_provider_id: Optional[int] = None
    prescribed_during_visit_id: Optional[int] = None
    medication_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    dosage: Optional[str] = Field(default=None, min_length=1, max_length=100)
    frequency: Optional[str] = Field(default=None, min_length=1, max_length=100)
    conditions_or_symptoms: Optional[str] = Field(default=None, min_length=1)
    prescribed_date: Optional[date] = None
    instructions: Optional[str] = None
    status: Optional[MedicationStatus] = None


class MedicationListItem(BaseModel):
    id: int
    medication_name: str
    dosage: str
    frequency: str
    status: MedicationStatus
    instructions: Optional[str] = None
    prescribing_provider_id: Optional[int] = None
    provider_name: Optional[str] = None
    provider_deleted: Optional[bool] = None


class MedicationDetail(MedicationListItem):
    conditions_or_symptoms: str
    prescribed_date: Optional[str] = None
    prescribed_during_visit_id: Optional[int] = None
    provider_type: Optional[ProviderType] = None
    specialty: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------


class VisitCreate(BaseModel):
    provider_id: int
    visit_date: date
    visit_time: Optional[time] = None
    visit_reason: str = Field(min_length=1)

    @field_validator("visit_time", mode="before")
    @classmethod
    def check_visit_time(cls, value: object) -> Optional[time]:
        return _parse_visit_time(value)


class VisitUpdate(BaseModel):
    provider_id: Optional[int] = None
    visit_date: Optional[date] = None
    visit_time: Optional[time] = None
    visit_reason: Optional[str] = Field(default=None, min_length=1)
    status: Optional[VisitStatus] = None

    @field_validator("visit_time", mode="before")
    @classmethod
    def check_visit_time(cls, value: object) -> Optional[time]:
        return _parse_visit_time(value)


class VisitListItem(BaseModel):
    id: int
    provider_id: int
    provider_name: str
    provider_type: ProviderType
    specialty: Optional[str] = None
    visit_date: str
    visit_time: Optional[str] = None
    status: Optional[VisitStatus] = None


class VisitDetail(BaseModel):
    id: int
    provider_id: int
    provider_name: str
    provider_type: ProviderType
    specialty: Optional[str] = None
    phone: Optional[str] = None
    office_address: Optional[str] = None
    visit_date: str
    visit_time: Optional[str] = None
    visit_reason: str
    status: VisitStatus


# ---------------------------------------------------------------------------
# Visit preparation and summaries
# ---------------------------------------------------------------------------


class VisitPrepCreate(BaseModel):
    visit_id: int
    questions_to_ask: Optional[str] = None
    symptoms_to_discuss: Optional[str] = None
    conditions_to_discuss: Optional[str] = None
    medications_to_discuss: Optional[str] = None
    goals_for_visit: Optional[str] = None
    prep_summary_notes: str = Field(min_length=1)


class VisitPrepUpdate(BaseModel):
    questions_to_ask: Optional[str] = None
    symptoms_to_discuss: Optional[str] = None
    conditions_to_discuss: Optional[str] = None
    medications_to_discuss: Optional[str] = None
    goals_for_visit: Optional[str] = None
    prep_summary_notes: Optional[str] = Field(default=None, min_length=1)


class VisitPrepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    visit_id: int
    questions_to_ask: Optional[str] = None
    symptoms_to_discuss: Optional[str] = None
    conditions_to_discuss: Optional[str] = None
    medications_to_discuss: Optional[str] = None
    goals_for_visit: Optional[str] = None
    prep_summary_notes: str
    created_at: datetime
    updated_at: datetime


class UserConditionsResponse(BaseModel):
    has_conditions: bool
    conditions: Optional[List[str]] = None


class VisitSummaryCreate(BaseModel):
    visit_id: int
    new_diagnosis: Optional[str] = None
    follow_up_instructions: Optional[str] = None
    doctor_recommendations: Optional[str] = None
    patient_concerns_addressed: Optional[str] = None
    patient_concerns_not_addressed: Optional[str] = None
    visit_summary_notes: str = Field(min_length=1)


class VisitSummaryUpdate(BaseModel):
    new_diagnosis: Optional[str] = None
    follow_up_instructions: Optional[str] = None
    doctor_recommendations: Optional[str] = None
    patient_concerns_addressed: Optional[str] = None
    patient_concerns_not_addressed: Optional[str] = None
    visit_summary_notes: Optional[str] = Field(default=None, min_length=1)


class VisitSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    visit_id: int
    new_diagnosis: Optional[str] = None
    follow_up_instructions: Optional[str] = None
    doctor_recommendations: Optional[str] = None
    patient_concerns_addressed: Optional[str] = None
    patient_concerns_not_addressed: Optional[str] = None
    visit_summary_notes: str
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# AI visit questions
# ---------------------------------------------------------------------------


class DataIncluded(BaseModel):
    symptoms: int
    medications: int
    hasProvider: bool


class VisitQuestionsMetadata(BaseModel):
    questionsGenerated: int
    dataIncluded: DataIncluded


class VisitQuestionsResponse(BaseModel):
    success: bool = True
    questions: List[str]
    metadata: VisitQuestionsMetadata
