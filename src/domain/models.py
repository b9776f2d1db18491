"""
Data models for the submission gateway domain.

These type-safe data structures define clear contracts between components.
Submitted values are treated as PHI: none of these models is persisted and
none of them is logged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

# Top-level fields of the single-medication form variant
SINGLE_MEDICATION_FIELDS = {
    'medicationName': 'name',
    'dosage': 'dosage',
    'frequency': 'frequency',
    'prescribingPhysician': 'prescribingPhysician',
    'prescriptionDate': 'prescriptionDate',
}

KNOWN_FIELDS = (
    'patientName', 'dateOfBirth', 'mrn', 'phone', 'email',
    'pharmacyName', 'pharmacyPhone',
    'medications',
    'allergies', 'currentMedications', 'specialInstructions',
) + tuple(SINGLE_MEDICATION_FIELDS)


def _text(value: Any) -> Optional[str]:
    """Coerce a field value to text; None and blank strings become None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    return value if value.strip() else None


@dataclass
class ApiRequest:
    """
    One inbound HTTP request, normalized from an API Gateway event.

    Attributes:
        method: Upper-case HTTP method
        headers: Header map with lower-case names
        body: Raw request body (decoded from base64 if needed)
        client_ip: Caller address used for rate limiting (never logged raw)
    """
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ''
    client_ip: str = 'unknown'

    @property
    def origin(self) -> Optional[str]:
        return self.headers.get('origin')

    @property
    def content_type(self) -> str:
        return self.headers.get('content-type', '')

    @property
    def user_agent(self) -> str:
        return self.headers.get('user-agent', 'unknown')


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Outcome of one rate limit check.

    Attributes:
        allowed: Whether the submission may proceed
        remaining: Submissions left in the current window after this one
        reset_at: Epoch seconds when the window frees up a slot
    """
    allowed: bool
    remaining: int
    reset_at: float


@dataclass
class MedicationEntry:
    """One medication in the repeating medication group."""
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    prescribing_physician: Optional[str] = None
    prescription_date: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> 'MedicationEntry':
        """Build an entry from a list element (mapping or bare medication name)."""
        if isinstance(value, Mapping):
            return cls(
                name=_text(value.get('name', value.get('medicationName'))),
                dosage=_text(value.get('dosage')),
                frequency=_text(value.get('frequency')),
                prescribing_physician=_text(value.get('prescribingPhysician')),
                prescription_date=_text(value.get('prescriptionDate')),
            )
        return cls(name=_text(value))


@dataclass
class IntakeSubmission:
    """
    Typed view of a sanitized submission.

    Known fields are exposed as attributes for rendering. Anything else the
    form sent is kept, sanitized, in `extra_fields`.
    """
    patient_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    mrn: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    pharmacy_name: Optional[str] = None
    pharmacy_phone: Optional[str] = None
    medications: List[MedicationEntry] = field(default_factory=list)
    allergies: Optional[str] = None
    current_medications: Optional[str] = None
    special_instructions: Optional[str] = None
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'IntakeSubmission':
        """
        Build the typed view from a sanitized submission mapping.

        A `medications` list takes precedence. Without one, the top-level
        single-medication fields are read as a group of size one.

        Args:
            data: Sanitized submission

        Returns:
            IntakeSubmission with unknown keys in extra_fields
        """
        raw_medications = data.get('medications')
        if isinstance(raw_medications, (list, tuple)):
            medications = [MedicationEntry.from_value(item) for item in raw_medications]
        else:
            single = {
                entry_key: data.get(field_name)
                for field_name, entry_key in SINGLE_MEDICATION_FIELDS.items()
            }
            if any(_text(value) for value in single.values()):
                medications = [MedicationEntry.from_value(single)]
            else:
                medications = []

        return cls(
            patient_name=_text(data.get('patientName')),
            date_of_birth=_text(data.get('dateOfBirth')),
            mrn=_text(data.get('mrn')),
            phone=_text(data.get('phone')),
            email=_text(data.get('email')),
            pharmacy_name=_text(data.get('pharmacyName')),
            pharmacy_phone=_text(data.get('pharmacyPhone')),
            medications=medications,
            allergies=_text(data.get('allergies')),
            current_medications=_text(data.get('currentMedications')),
            special_instructions=_text(data.get('specialInstructions')),
            extra_fields={k: v for k, v in data.items() if k not in KNOWN_FIELDS},
        )


@dataclass(frozen=True)
class RenderedMessage:
    """
    The two bodies of one outgoing email.

    Attributes:
        html_body: Markup rendering
        text_body: Plain text rendering with the same fields in the same order
    """
    html_body: str
    text_body: str


@dataclass
class SubmissionResult:
    """
    Result of handling one request.

    This explicit result type makes success/failure handling clear: every
    invocation produces exactly one SubmissionResult, which maps to exactly
    one HTTP response.

    Attributes:
        status_code: HTTP status
        body: JSON response body (None for 204 responses)
        headers: Request-specific headers (CORS, Retry-After, Allow); the
            security headers are added when the response is built
        request_id: Identifier of the request (None for preflight)
        delivery_id: Mail transport message id (only on success)
    """
    status_code: int
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    request_id: Optional[str] = None
    delivery_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300

    def __repr__(self) -> str:
        """Human-readable representation for logging (never includes the body)."""
        return (
            f"SubmissionResult(status_code={self.status_code}, "
            f"request_id={self.request_id}, success={self.success})"
        )
