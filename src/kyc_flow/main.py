"""
Configuration and Types for the KYC flow

Steps, evidence, sessions and results shared by every component, plus the
flow configuration.
"""

import base64
import mimetypes
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MiB


class Step(Enum):
    """Workflow steps, in flow order"""
    WELCOME = "welcome"
    ID_TYPE_SELECTION = "idTypeSelection"
    ID_SCAN_FRONT = "idScanFront"
    ID_SCAN_BACK = "idScanBack"
    OCR_PREVIEW = "ocrPreview"
    SELFIE = "selfie"
    REVIEW = "review"
    PROCESSING = "processing"
    RESULT = "result"


STEP_ORDER: List[Step] = list(Step)

STEP_TITLES = {
    Step.WELCOME: "Welcome",
    Step.ID_TYPE_SELECTION: "Select ID Type",
    Step.ID_SCAN_FRONT: "Scan Front of ID",
    Step.ID_SCAN_BACK: "Scan Back of ID",
    Step.OCR_PREVIEW: "Review Information",
    Step.SELFIE: "Take Selfie",
    Step.REVIEW: "Review & Confirm",
    Step.PROCESSING: "Processing",
    Step.RESULT: "Verification Result",
}

STEP_DESCRIPTIONS = {
    Step.WELCOME: "Start your identity verification process",
    Step.ID_TYPE_SELECTION: "Choose the type of identification document",
    Step.ID_SCAN_FRONT: "Capture the front side of your document",
    Step.ID_SCAN_BACK: "Capture the back side of your document",
    Step.OCR_PREVIEW: "Review and edit extracted information",
    Step.SELFIE: "Take a photo of yourself for verification",
    Step.REVIEW: "Review all information before submission",
    Step.PROCESSING: "Verifying your identity",
    Step.RESULT: "View your verification result",
}


class VerificationStatus(Enum):
    """Final verification status surfaced to callers"""
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    UNDER_REVIEW = "under_review"


@dataclass
class EvidenceFile:
    """A captured image handed over by the UI layer"""
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str, content_type: Optional[str] = None) -> "EvidenceFile":
        """Load a file from disk, guessing its MIME type from the extension"""
        file_path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        return cls(
            filename=file_path.name,
            content=file_path.read_bytes(),
            content_type=content_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "content": base64.b64encode(self.content).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["EvidenceFile"]:
        if not data:
            return None
        return cls(
            filename=data.get("filename", ""),
            content=base64.b64decode(data.get("content", "")),
            content_type=data.get("content_type", ""),
        )


# Backend (camelCase) key -> OCRFields attribute
_OCR_KEY_MAP = {
    "fullName": "full_name",
    "fullNameAmharic": "full_name_local",
    "dateOfBirth": "date_of_birth",
    "dateOfBirthEthiopian": "date_of_birth_local",
    "dateOfIssue": "date_of_issue",
    "dateOfIssueEthiopian": "date_of_issue_local",
    "dateOfExpiry": "date_of_expiry",
    "dateOfExpiryEthiopian": "date_of_expiry_local",
    "gender": "gender",
    "idNumber": "id_number",
    "documentType": "document_type",
    "issuingAuthority": "issuing_authority",
    "sex": "sex",
    "documentStatus": "document_status",
}


@dataclass
class OCRFields:
    """Structured data read off an identity document"""
    full_name: str = ""
    date_of_birth: str = ""
    date_of_expiry: str = "2025-12-31"
    gender: str = ""
    id_number: str = ""
    issuing_authority: str = "Government of Ethiopia"

    # Localized / secondary fields
    full_name_local: Optional[str] = None
    date_of_birth_local: Optional[str] = None
    date_of_issue: Optional[str] = None
    date_of_issue_local: Optional[str] = None
    date_of_expiry_local: Optional[str] = None
    document_type: Optional[str] = None
    sex: Optional[str] = None
    document_status: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "date_of_birth": self.date_of_birth,
            "date_of_expiry": self.date_of_expiry,
            "gender": self.gender,
            "id_number": self.id_number,
            "issuing_authority": self.issuing_authority,
            "full_name_local": self.full_name_local,
            "date_of_birth_local": self.date_of_birth_local,
            "date_of_issue": self.date_of_issue,
            "date_of_issue_local": self.date_of_issue_local,
            "date_of_expiry_local": self.date_of_expiry_local,
            "document_type": self.document_type,
            "sex": self.sex,
            "document_status": self.document_status,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "OCRFields":
        """Build from snake_case or backend camelCase keys; unknown keys are ignored"""
        ocr = cls()
        for key, value in (data or {}).items():
            attr = _OCR_KEY_MAP.get(key, key)
            if attr in cls.__dataclass_fields__:
                setattr(ocr, attr, value)
        return ocr

    def merged_with(self, extracted: Dict[str, Any]) -> "OCRFields":
        """Return a new object with backend-extracted values laid over this one"""
        merged = self.to_dict()
        for key, value in extracted.items():
            attr = _OCR_KEY_MAP.get(key, key)
            if attr in merged:
                merged[attr] = value
        return OCRFields.from_dict(merged)


@dataclass
class EvidenceData:
    """Everything the user has captured so far"""
    id_type: str = ""
    front_image: Optional[EvidenceFile] = None
    back_image: Optional[EvidenceFile] = None
    selfie_image: Optional[EvidenceFile] = None
    extracted_fields: OCRFields = field(default_factory=OCRFields)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id_type": self.id_type,
            "front_image": self.front_image.to_dict() if self.front_image else None,
            "back_image": self.back_image.to_dict() if self.back_image else None,
            "selfie_image": self.selfie_image.to_dict() if self.selfie_image else None,
            "extracted_fields": self.extracted_fields.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvidenceData":
        return cls(
            id_type=data.get("id_type", ""),
            front_image=EvidenceFile.from_dict(data.get("front_image")),
            back_image=EvidenceFile.from_dict(data.get("back_image")),
            selfie_image=EvidenceFile.from_dict(data.get("selfie_image")),
            extracted_fields=OCRFields.from_dict(data.get("extracted_fields")),
        )


@dataclass
class Session:
    """A backend-tracked verification attempt"""
    id: str
    status: str = ""
    token: Optional[str] = None
    decision: Optional[str] = None
    expires_at: Optional[str] = None
    pii_data: Optional[Dict[str, Any]] = None
    ui_data: Any = None
    metadata: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "token": self.token,
            "decision": self.decision,
            "expires_at": self.expires_at,
            "pii_data": self.pii_data,
            "ui_data": self.ui_data,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """Accepts both the backend payload (camelCase) and our own snapshots"""
        session_id = data.get("id") or data.get("sessionId") or data.get("session_id")
        if not session_id:
            raise KeyError("id")
        return cls(
            id=str(session_id),
            status=data.get("status", ""),
            token=data.get("token"),
            decision=data.get("decision"),
            expires_at=data.get("expires_at", data.get("expiresAt")),
            pii_data=data.get("pii_data", data.get("piiData")),
            ui_data=data.get("ui_data", data.get("uiData")),
            metadata=data.get("metadata"),
        )


@dataclass
class VerificationResult:
    """Outcome of a completed verification as reported by the result service"""
    status: VerificationStatus
    decision: Optional[str] = None
    review_required: Optional[bool] = None
    message: Optional[str] = None
    ui_data: Any = None
    raw: Any = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "decision": self.decision,
            "review_required": self.review_required,
            "message": self.message,
            "ui_data": self.ui_data,
            "raw": self.raw,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerificationResult":
        return cls(
            status=VerificationStatus(data["status"]),
            decision=data.get("decision"),
            review_required=data.get("review_required"),
            message=data.get("message"),
            ui_data=data.get("ui_data"),
            raw=data.get("raw"),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.now(),
        )


@dataclass
class Credentials:
    """Caller-supplied credentials attached to every authenticated call"""
    api_key: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    session_token: Optional[str] = None

    def info(self) -> Dict[str, Any]:
        """Credential summary without the key itself"""
        return {
            "has_api_key": bool(self.api_key),
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
        }

    @classmethod
    def from_env(cls) -> "Credentials":
        return cls(
            api_key=os.getenv("KYC_API_KEY", ""),
            tenant_id=os.getenv("KYC_TENANT_ID") or None,
            user_id=os.getenv("KYC_USER_ID") or None,
            session_token=os.getenv("KYC_SESSION_TOKEN") or None,
        )


@dataclass
class IdType:
    """An identity-document type accepted by the tenant"""
    id: str
    name: str
    code: str
    requires_front: bool = True
    requires_back: bool = True
    requires_selfie: bool = True
    description: Optional[str] = None
    icon: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdType":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            code=data.get("code", str(data["id"])),
            requires_front=bool(data.get("requiresFront", data.get("requires_front", True))),
            requires_back=bool(data.get("requiresBack", data.get("requires_back", True))),
            requires_selfie=bool(data.get("requiresSelfie", data.get("requires_selfie", True))),
            description=data.get("description"),
            icon=data.get("icon"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "requires_front": self.requires_front,
            "requires_back": self.requires_back,
            "requires_selfie": self.requires_selfie,
            "description": self.description,
            "icon": self.icon,
        }


@dataclass
class APIResponse:
    """Envelope returned by the evidence service"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any], status_code: Optional[int] = None) -> "APIResponse":
        return cls(
            success=bool(payload.get("success", False)),
            data=payload.get("data"),
            error=payload.get("error"),
            message=payload.get("message"),
            status_code=payload.get("statusCode", status_code),
        )


@dataclass
class StepInfo:
    """Per-step progress descriptor"""
    step: Step
    title: str
    description: str
    is_completed: bool
    is_current: bool
    can_go_back: bool


@dataclass
class ProgressInfo:
    """Workflow-level progress"""
    current_step: Step
    current_step_index: int
    total_steps: int
    steps: List[StepInfo]
    can_go_next: bool
    can_go_back: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_step": self.current_step.value,
            "current_step_index": self.current_step_index,
            "total_steps": self.total_steps,
            "steps": [
                {
                    "step": info.step.value,
                    "title": info.title,
                    "description": info.description,
                    "is_completed": info.is_completed,
                    "is_current": info.is_current,
                    "can_go_back": info.can_go_back,
                }
                for info in self.steps
            ],
            "can_go_next": self.can_go_next,
            "can_go_back": self.can_go_back,
        }


@dataclass
class WorkflowState:
    """
    Complete state of one verification workflow.

    current_step is always a member of STEP_ORDER and step_history is never
    empty.
    """
    current_step: Step = Step.WELCOME
    data: EvidenceData = field(default_factory=EvidenceData)
    session: Optional[Session] = None
    result: Optional[VerificationResult] = None
    step_history: List[Step] = field(default_factory=lambda: [Step.WELCOME])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "current_step": self.current_step.value,
            "data": self.data.to_dict(),
            "session": self.session.to_dict() if self.session else None,
            "result": self.result.to_dict() if self.result else None,
            "step_history": [step.value for step in self.step_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowState":
        history = [Step(value) for value in data.get("step_history") or []]
        current = Step(data.get("current_step", Step.WELCOME.value))
        return cls(
            current_step=current,
            data=EvidenceData.from_dict(data.get("data") or {}),
            session=Session.from_dict(data["session"]) if data.get("session") else None,
            result=VerificationResult.from_dict(data["result"]) if data.get("result") else None,
            step_history=history or [current],
        )


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class FlowConfig:
    """
    Configuration for a KYC flow.

    Controls backend addresses, feature flags, persistence and network
    behaviour.
    """
    # Backends
    api_base_url: str = field(
        default_factory=lambda: os.getenv("KYC_API_BASE_URL", "http://localhost:3003")
    )
    result_service_url: str = field(
        default_factory=lambda: os.getenv("KYC_RESULT_SERVICE_URL", "http://localhost:8001")
    )
    session_id: Optional[str] = None
    callback_url: Optional[str] = None

    # Feature flags
    enable_auto_ocr: bool = True
    enable_face_verification: bool = True
    enable_progress_tracking: bool = True
    enable_persistence: bool = True

    # Persistence. Snapshots embed the captured images, so nothing is
    # written to disk unless a directory is configured.
    storage_path: Optional[Path] = field(
        default_factory=lambda: _env_path("KYC_STORAGE_PATH")
    )

    # Network
    timeout_ms: int = 30000
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    retry_backoff_multiplier: float = 2.0

    # Validation
    max_file_size: int = MAX_FILE_SIZE

    debug: bool = False

    @classmethod
    def from_yaml(cls, path: str) -> "FlowConfig":
        """Load config from YAML file"""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if data.get("storage_path") is not None:
            data["storage_path"] = Path(data["storage_path"])
        return cls(**data)

    @classmethod
    def from_env(cls) -> "FlowConfig":
        """Load config from environment variables"""
        return cls(
            session_id=os.getenv("KYC_SESSION_ID") or None,
            callback_url=os.getenv("KYC_CALLBACK_URL") or None,
            enable_persistence=os.getenv("KYC_ENABLE_PERSISTENCE", "true").lower() == "true",
            timeout_ms=int(os.getenv("KYC_TIMEOUT_MS", "30000")),
            retry_attempts=int(os.getenv("KYC_RETRY_ATTEMPTS", "3")),
            debug=os.getenv("KYC_DEBUG", "false").lower() == "true",
        )
