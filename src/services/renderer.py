"""
Renders a sanitized submission into the markup and plain text email bodies.

Both bodies carry the same fields in the same order. Values are inserted
as-is: the input must already be sanitized, and nothing is re-escaped,
reformatted or reordered here.
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from domain.models import IntakeSubmission, MedicationEntry, RenderedMessage
from services.templates import render_template

NOT_AVAILABLE = 'N/A'
NONE_REPORTED = 'None reported'
NONE = 'None'
NO_MEDICATIONS = 'No medications reported'

_NO_MEDICATIONS_HTML = (
    '    <div class="field">\n'
    f'      <div class="field-value">{NO_MEDICATIONS}</div>\n'
    '    </div>\n'
)


def _or(value: Optional[str], placeholder: str = NOT_AVAILABLE) -> str:
    return value if value else placeholder


def _medication_fields(index: int, entry: MedicationEntry) -> Dict[str, str]:
    return {
        'index': str(index),
        'name': _or(entry.name),
        'dosage': _or(entry.dosage),
        'frequency': _or(entry.frequency),
        'prescribing_physician': _or(entry.prescribing_physician),
        'prescription_date': _or(entry.prescription_date),
    }


def _submission_fields(submission: IntakeSubmission, submitted_at: str) -> Dict[str, str]:
    return {
        'submitted_at': submitted_at,
        'patient_name': _or(submission.patient_name),
        'date_of_birth': _or(submission.date_of_birth),
        'mrn': _or(submission.mrn),
        'phone': _or(submission.phone),
        'email': _or(submission.email),
        'pharmacy_name': _or(submission.pharmacy_name),
        'pharmacy_phone': _or(submission.pharmacy_phone),
        'allergies': _or(submission.allergies, NONE_REPORTED),
        'current_medications': _or(submission.current_medications, NONE_REPORTED),
        'special_instructions': _or(submission.special_instructions, NONE),
    }


def render_html(submission: IntakeSubmission, submitted_at: str) -> str:
    """Render the markup body."""
    if submission.medications:
        medications = '\n'.join(
            render_template('medication_entry.html', **_medication_fields(i, entry))
            for i, entry in enumerate(submission.medications, start=1)
        )
    else:
        medications = _NO_MEDICATIONS_HTML

    return render_template(
        'intake_email.html',
        medications=medications,
        **_submission_fields(submission, submitted_at)
    )


def render_text(submission: IntakeSubmission, submitted_at: str) -> str:
    """Render the plain text body."""
    if submission.medications:
        medications = '\n'.join(
            render_template('medication_entry.txt', **_medication_fields(i, entry))
            for i, entry in enumerate(submission.medications, start=1)
        )
    else:
        medications = f"{NO_MEDICATIONS}\n"

    return render_template(
        'intake_email.txt',
        medications=medications,
        **_submission_fields(submission, submitted_at)
    )


def render(
    submission: Union[IntakeSubmission, Mapping[str, Any]],
    submitted_at: Union[datetime, str]
) -> RenderedMessage:
    """
    Render a sanitized submission into both email bodies.

    Args:
        submission: Sanitized submission mapping or its typed view
        submitted_at: Submission time shown in the message

    Returns:
        RenderedMessage with html_body and text_body

    Raises:
        ValueError: If a packaged template is missing or malformed
    """
    if not isinstance(submission, IntakeSubmission):
        submission = IntakeSubmission.from_mapping(submission)
    if isinstance(submitted_at, datetime):
        submitted_at = submitted_at.isoformat()

    return RenderedMessage(
        html_body=render_html(submission, submitted_at),
        text_body=render_text(submission, submitted_at),
    )
