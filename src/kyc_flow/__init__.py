"""
kyc-flow - identity verification workflow orchestration

Drives the fixed capture/review step sequence of an identity verification,
gates every forward move on the captured data, and relays evidence to the
verification backend (falling back to demo behaviour when it is down).
"""

__version__ = "1.0.0"

from .main import (
    APIResponse,
    Credentials,
    EvidenceData,
    EvidenceFile,
    FlowConfig,
    IdType,
    OCRFields,
    ProgressInfo,
    Session,
    Step,
    StepInfo,
    VerificationResult,
    VerificationStatus,
    WorkflowState,
)

from .errors import (
    APIError,
    AuthError,
    FlowDestroyedError,
    ForbiddenError,
    InitializationError,
    KYCError,
    NetworkError,
    OperationInProgressError,
    RateLimitError,
    ServerError,
    SessionError,
    TransportError,
    ValidationError,
)

from .validation import ValidationGate, ValidationResult
from .client import ClientContext, VerificationClient, fallback_id_types, map_decision
from .orchestrator import StepOrchestrator
from .storage import JsonFileStore, MemoryStore, PersistenceCache
from .events import EventBus, ErrorSink
from .facade import KYCFlow

__all__ = [
    # Facade
    "KYCFlow",
    # Core
    "StepOrchestrator",
    "ValidationGate",
    "ValidationResult",
    "VerificationClient",
    "ClientContext",
    "fallback_id_types",
    "map_decision",
    # Persistence / events
    "PersistenceCache",
    "MemoryStore",
    "JsonFileStore",
    "EventBus",
    "ErrorSink",
    # Types
    "APIResponse",
    "Credentials",
    "EvidenceData",
    "EvidenceFile",
    "FlowConfig",
    "IdType",
    "OCRFields",
    "ProgressInfo",
    "Session",
    "Step",
    "StepInfo",
    "VerificationResult",
    "VerificationStatus",
    "WorkflowState",
    # Errors
    "KYCError",
    "ValidationError",
    "APIError",
    "AuthError",
    "ForbiddenError",
    "RateLimitError",
    "ServerError",
    "TransportError",
    "NetworkError",
    "SessionError",
    "InitializationError",
    "OperationInProgressError",
    "FlowDestroyedError",
    # Meta
    "__version__",
]
