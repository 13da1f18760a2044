"""
Prompt templates for the visit preparation assistant.

The builder turns a :class:`VisitContext` into Anthropic style messages.  The
prompt asks for a bare JSON array of question strings; the reply is parsed by
:mod:`healthrecord.visit_questions`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

TIME_NOT_SPECIFIED = "Not specified"
NONE_LOGGED = "None logged"


@dataclass
class ProviderFacts:
    provider_name: str
    provider_type: str
    specialty: Optional[str] = None


@dataclass
class SymptomFacts:
    symptom_name: str
    severity: int
    onset_date: str
    status: str
    description: Optional[str] = None
    triggers: Optional[str] = None


@dataclass
class MedicationFacts:
    medication_name: str
    dosage: str
    frequency: str
    status: str
    conditions_or_symptoms: str


@dataclass
class VisitContext:
    """Everything the prompt is allowed to mention about the patient."""

    visit_date: str
    visit_reason: str
    visit_time: str = TIME_NOT_SPECIFIED
    provider: Optional[ProviderFacts] = None
    symptoms: List[SymptomFacts] = field(default_factory=list)
    medications: List[MedicationFacts] = field(default_factory=list)


def _symptom_line(s: SymptomFacts) -> str:
    line = f"- {s.symptom_name} (severity {s.severity}/10, started {s.onset_date}, status: {s.status})"
    if s.description:
        line += f": {s.description}"
    if s.triggers:
        line += f", triggers: {s.triggers}"
    return line


def _medication_line(m: MedicationFacts) -> str:
    return f"- {m.medication_name} {m.dosage}, {m.frequency} (status: {m.status}) - for {m.conditions_or_symptoms}"


def _provider_text(provider: Optional[ProviderFacts]) -> str:
    if provider is None:
        return "Provider information not available"
    detail = provider.provider_type
    if provider.specialty:
        detail += f", {provider.specialty}"
    return f"{provider.provider_name} ({detail})"


def build_visit_questions_prompt(context: VisitContext) -> str:
    symptoms_text = "\n".join(_symptom_line(s) for s in context.symptoms) or NONE_LOGGED
    medications_text = "\n".join(_medication_line(m) for m in context.medications) or NONE_LOGGED
    return (
        "You are helping a patient prepare for their upcoming doctor visit. Based on their "
        "health data, generate 5-8 specific, personalized questions they should ask their doctor.\n"
        "\n"
        "VISIT DETAILS:\n"
        f"- Date: {context.visit_date} at {context.visit_time}\n"
        f"- Reason: {context.visit_reason}\n"
        f"- Provider: {_provider_text(context.provider)}\n"
        "\n"
        "CURRENT SYMPTOMS:\n"
        f"{symptoms_text}\n"
        "\n"
        "CURRENT MEDICATIONS:\n"
        f"{medications_text}\n"
        "\n"
        "INSTRUCTIONS:\n"
        "1. Generate 5-8 specific questions that reference the patient's actual data "
        "(symptom names, dates, severities, medications)\n"
        "2. Questions should help the patient get the most out of their visit\n"
        "3. Consider medication-symptom interactions when relevant\n"
        "4. Make questions actionable and answerable by the doctor\n"
        "5. Avoid generic questions - be specific to this patient's situation\n"
        "\n"
        "Return ONLY a JSON array of question strings, nothing else. Format:\n"
        '["Question 1", "Question 2", "Question 3", ...]'
    )


def build_visit_questions_messages(context: VisitContext) -> List[Dict[str, str]]:
    """Return the single user message sent to the model."""

    return [{"role": "user", "content": build_visit_questions_prompt(context)}]


__all__ = [
    "ProviderFacts",
    "SymptomFacts",
    "MedicationFacts",
    "VisitContext",
    "build_visit_questions_prompt",
    "build_visit_questions_messages",
]
