"""Personalised visit preparation questions generated by an external model."""

from __future__ import annotations

import json
import re
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from healthrecord import medications, symptoms, visits
from healthrecord.anthropic_client import call_anthropic
from healthrecord.errors import AIGenerationError, AIResponseParseError
from healthrecord.metrics import AI_PARSE_FAILURES
from healthrecord.prompts import (
    TIME_NOT_SPECIFIED,
    MedicationFacts,
    ProviderFacts,
    SymptomFacts,
    VisitContext,
    build_visit_questions_messages,
)
from healthrecord.schemas import DataIncluded, VisitQuestionsMetadata, VisitQuestionsResponse
from healthrecord.time_utils import format_date, format_time

logger = structlog.get_logger(__name__)

TextGenerator = Callable[[List[Dict[str, str]]], str]

_FENCED_ARRAY_RE = re.compile(r"```(?:json)?\s*(\[[\s\S]*?\])\s*```")
_EXCERPT_LENGTH = 500


def parse_questions(raw: str) -> List[str]:
    """Extract the JSON array of questions from a model reply.

    A markdown fenced block is unwrapped when present; otherwise the whole
    reply must be the array.
    """

    text = raw
    match = _FENCED_ARRAY_RE.search(text)
    if match:
        text = match.group(1)
    failure = f"Failed to parse AI response as JSON. Response was: {raw[:_EXCERPT_LENGTH]}"
    try:
        questions = json.loads(text.strip())
    except json.JSONDecodeError as exc:
        raise AIResponseParseError(failure) from exc
    if not isinstance(questions, list) or not all(isinstance(q, str) for q in questions):
        raise AIResponseParseError(failure)
    return questions


def build_context(session: Session, user_id: int, visit_id: int) -> VisitContext:
    """Collect the visit, its provider and the user's health data.

    Symptoms are every active record, newest onset first.  Medications are
    every active record regardless of taking/discontinued status.
    """

    visit = visits.get_owned_visit(session, user_id, visit_id)
    provider = visit.provider
    return VisitContext(
        visit_date=format_date(visit.visit_date),
        visit_time=format_time(visit.visit_time) or TIME_NOT_SPECIFIED,
        visit_reason=visit.visit_reason,
        provider=(
            ProviderFacts(
                provider_name=provider.provider_name,
                provider_type=provider.provider_type.value,
                specialty=provider.specialty,
            )
            if provider is not None
            else None
        ),
        symptoms=[
            SymptomFacts(
                symptom_name=s.symptom_name,
                severity=s.severity,
                onset_date=format_date(s.onset_date),
                status=s.status.value,
                description=s.description,
                triggers=s.triggers,
            )
            for s in symptoms.active_symptoms(session, user_id)
        ],
        medications=[
            MedicationFacts(
                medication_name=m.medication_name,
                dosage=m.dosage,
                frequency=m.frequency,
                status=m.status.value,
                conditions_or_symptoms=m.conditions_or_symptoms,
            )
            for m in medications.all_medications(session, user_id)
        ],
    )


def generate_visit_questions(
    session: Session,
    user_id: int,
    visit_id: int,
    *,
    generate: Optional[TextGenerator] = None,
) -> VisitQuestionsResponse:
    """Ask the model for questions about ``visit_id``; one call, no retries."""

    context = build_context(session, user_id, visit_id)
    messages = build_visit_questions_messages(context)
    generator = generate or call_anthropic
    try:
        raw = generator(messages)
    except RuntimeError as exc:
        logger.warning("visit_questions_failed", user_id=user_id, visit_id=visit_id, error=str(exc))
        raise AIGenerationError(f"AI generation failed: {exc}") from exc

    try:
        questions = parse_questions(raw)
    except AIResponseParseError:
        AI_PARSE_FAILURES.inc()
        logger.warning("visit_questions_unparseable", user_id=user_id, visit_id=visit_id)
        raise

    logger.info(
        "visit_questions_generated",
        user_id=user_id,
        visit_id=visit_id,
        questions=len(questions),
    )
    return VisitQuestionsResponse(
        success=True,
        questions=questions,
        metadata=VisitQuestionsMetadata(
            questionsGenerated=len(questions),
            dataIncluded=DataIncluded(
                symptoms=len(context.symptoms),
                medications=len(context.medications),
                hasProvider=context.provider is not None,
            ),
        ),
    )
