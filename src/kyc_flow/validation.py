"""
Validation Gate

Decides whether the data captured for a step is admissible before the
orchestrator lets the workflow move forward. Pure functions only: no network
and no persistence access, so every rule can be unit tested without mocks.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional

from .errors import ValidationError
from .main import (
    MAX_FILE_SIZE,
    Credentials,
    EvidenceData,
    EvidenceFile,
    FlowConfig,
    OCRFields,
    Step,
)

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
})

MIN_API_KEY_LENGTH = 10

# Layouts accepted on top of ISO 8601
_DATE_FORMATS = (
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%d-%m-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)


@dataclass
class ValidationResult:
    """Result of a validation check"""
    is_valid: bool
    violations: List[str] = field(default_factory=list)

    @classmethod
    def from_violations(cls, violations: List[str]) -> "ValidationResult":
        return cls(is_valid=not violations, violations=violations)

    def raise_for_violations(self) -> None:
        if not self.is_valid:
            raise ValidationError(self.violations)


def is_valid_date(value: str) -> bool:
    """True when value parses as a calendar date; the layout does not matter"""
    if not value or not value.strip():
        return False
    text = value.strip()
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(text)
            return True
        except ValueError:
            pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    return False


class ValidationGate:
    """
    Per-step admissibility rules.

    | step            | rule                                            |
    |-----------------|-------------------------------------------------|
    | idTypeSelection | id type selected                                |
    | idScanFront     | front image present and admissible              |
    | idScanBack      | back image present and admissible               |
    | ocrPreview      | required OCR fields filled, dates parse         |
    | selfie          | selfie present and admissible                   |
    | review          | all of the above                                |

    Every other step always passes.
    """

    def __init__(self, max_file_size: int = MAX_FILE_SIZE):
        self.max_file_size = max_file_size
        self._rules: Dict[Step, Callable[[EvidenceData], List[str]]] = {
            Step.ID_TYPE_SELECTION: self._check_id_type,
            Step.ID_SCAN_FRONT: lambda data: self._check_image(
                data.front_image, "Front image must be captured"
            ),
            Step.ID_SCAN_BACK: lambda data: self._check_image(
                data.back_image, "Back image must be captured"
            ),
            Step.OCR_PREVIEW: lambda data: self.validate_ocr(data.extracted_fields).violations,
            Step.SELFIE: lambda data: self._check_image(
                data.selfie_image, "Selfie must be captured"
            ),
            Step.REVIEW: lambda data: self.validate_final(data).violations,
        }

    def validate(self, step: Step, data: EvidenceData) -> ValidationResult:
        """Validate the data captured for a single step"""
        rule = self._rules.get(step)
        violations = rule(data) if rule else []
        if violations:
            logger.debug(f"Step {step.value} rejected: {violations}")
        return ValidationResult.from_violations(violations)

    def validate_final(self, data: EvidenceData) -> ValidationResult:
        """Aggregate every per-field rule ahead of submission"""
        violations: List[str] = []

        if not data.id_type:
            violations.append("ID type is required")

        violations.extend(self._check_image(data.front_image, "Front image is required"))
        violations.extend(self._check_image(data.back_image, "Back image is required"))
        violations.extend(self._check_image(data.selfie_image, "Selfie is required"))
        violations.extend(self.validate_ocr(data.extracted_fields).violations)

        return ValidationResult.from_violations(violations)

    def validate_ocr(self, fields: OCRFields) -> ValidationResult:
        violations: List[str] = []

        if not (fields.full_name or "").strip():
            violations.append("Full name is required")

        if not fields.date_of_birth:
            violations.append("Date of birth is required")
        elif not is_valid_date(fields.date_of_birth):
            violations.append("Invalid date of birth format")

        if not fields.date_of_expiry:
            violations.append("Expiry date is required")
        elif not is_valid_date(fields.date_of_expiry):
            violations.append("Invalid expiry date format")

        if not (fields.gender or "").strip():
            violations.append("Gender is required")

        if not (fields.id_number or "").strip():
            violations.append("ID number is required")

        if not (fields.issuing_authority or "").strip():
            violations.append("Issuing authority is required")

        return ValidationResult.from_violations(violations)

    def validate_file(
        self,
        file: Optional[EvidenceFile],
        max_size: Optional[int] = None,
    ) -> ValidationResult:
        """Size and MIME type admissibility of a captured image"""
        if file is None:
            return ValidationResult.from_violations(["File is required"])

        limit = max_size if max_size is not None else self.max_file_size
        violations: List[str] = []

        if file.size > limit:
            violations.append(f"File size must be less than {limit / (1024 * 1024):g}MB")

        if (file.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
            violations.append("File must be an image (JPEG, PNG, or WebP)")

        return ValidationResult.from_violations(violations)

    def validate_credentials(self, credentials: Credentials) -> None:
        """Raise ValidationError unless the credentials look usable"""
        violations: List[str] = []

        if not credentials.api_key:
            violations.append("API key is required")
        elif len(credentials.api_key) < MIN_API_KEY_LENGTH:
            violations.append("API key appears to be invalid (too short)")

        ValidationResult.from_violations(violations).raise_for_violations()

    def validate_config(self, config: FlowConfig, credentials: Optional[Credentials]) -> None:
        """Raise ValidationError unless the configuration is complete"""
        violations: List[str] = []

        if credentials is None:
            violations.append("Authentication configuration is required")
        elif not credentials.api_key:
            violations.append("API key is required")

        if not config.api_base_url:
            violations.append("API base URL is required")

        ValidationResult.from_violations(violations).raise_for_violations()

    def _check_id_type(self, data: EvidenceData) -> List[str]:
        if not data.id_type:
            return ["ID type must be selected"]
        return []

    def _check_image(self, file: Optional[EvidenceFile], missing_message: str) -> List[str]:
        if file is None:
            return [missing_message]
        return self.validate_file(file).violations
