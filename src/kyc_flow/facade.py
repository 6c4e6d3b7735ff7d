"""
KYC Flow facade

Composition root tying together credentials, the verification client, the
step orchestrator, snapshot persistence and the event channel.

Error policy:
- initialize() raises InitializationError.
- complete_verification() and create_verification_session() report to the
  error sink and then re-raise.
- every other operation reports to the error sink and never raises. With no
  "error" handler registered the error is only logged.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .client import ClientContext, VerificationClient
from .errors import FlowDestroyedError, InitializationError, KYCError, SessionError
from .events import (
    PROGRESS_UPDATED,
    STEP_CHANGED,
    VERIFICATION_COMPLETE,
    ErrorSink,
    EventBus,
)
from .main import (
    Credentials,
    EvidenceData,
    FlowConfig,
    IdType,
    ProgressInfo,
    Session,
    Step,
    VerificationResult,
    WorkflowState,
)
from .orchestrator import StepOrchestrator
from .storage import JsonFileStore, MemoryStore, PersistenceCache
from .validation import ValidationGate

logger = logging.getLogger(__name__)


class KYCFlow:
    """
    Entry point for driving an identity-verification workflow.

    Usage:
        flow = KYCFlow(Credentials(api_key="..."), FlowConfig(api_base_url="..."))
        flow.on("step_changed", lambda step, data: print(step.value))
        await flow.initialize()
        await flow.start_verification(session)
        await flow.update_data(id_type="passport")
        await flow.next_step()
    """

    def __init__(
        self,
        credentials: Credentials,
        config: Optional[FlowConfig] = None,
        storage: Optional[PersistenceCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or FlowConfig()
        self.context = ClientContext(config=self.config, credentials=credentials)
        self.client = VerificationClient(self.context, transport=transport)
        self.gate = ValidationGate(max_file_size=self.config.max_file_size)
        self.orchestrator = StepOrchestrator(self.client, self.gate, self.config)
        self.storage = storage or self._default_storage()
        self.events = EventBus()
        self.errors = ErrorSink(
            self.events,
            drop_level=logging.ERROR if self.config.debug else logging.DEBUG,
        )

        self._initialized = False
        self._destroyed = False
        self._demo_mode = False

    def _default_storage(self) -> PersistenceCache:
        if self.config.storage_path is not None:
            return JsonFileStore(self.config.storage_path, enabled=self.config.enable_persistence)
        return MemoryStore(enabled=self.config.enable_persistence)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Validate configuration, probe the backend and restore any snapshot"""
        if self._destroyed:
            raise FlowDestroyedError("KYC flow has been destroyed")
        if self._initialized:
            return

        try:
            self.gate.validate_config(self.config, self.context.credentials)
            self.gate.validate_credentials(self.context.credentials)

            self._demo_mode = not await self.client.probe()

            if self.config.enable_persistence:
                saved = self.storage.load()
                if saved:
                    self.orchestrator.restore(saved)
        except KYCError as e:
            raise InitializationError("Failed to initialize KYC flow", cause=e) from e

        self._initialized = True

        if self._demo_mode:
            logger.info("KYC flow initialized in DEMO MODE (backend unavailable)")
        else:
            logger.info("KYC flow initialized with backend connection")

    def destroy(self) -> None:
        """Drop all state and persisted data; the flow cannot be used afterwards"""
        self._initialized = False
        self._destroyed = True
        try:
            self.orchestrator.reset()
            self.storage.clear()
        except Exception as e:
            logger.error(f"Error destroying KYC flow: {e}")

    async def reset(self) -> None:
        try:
            self._check_alive()
            self.orchestrator.reset()
            self.storage.clear()
        except Exception as e:
            await self.errors.report(e)

    # =========================================================================
    # Workflow
    # =========================================================================

    async def start_verification(self, session: Optional[Session] = None) -> None:
        """Attach (or load) a session and restart at the welcome step"""
        try:
            await self._ensure_initialized()

            if session is not None:
                self.orchestrator.set_session(session)
            elif self.config.session_id:
                loaded = await self.client.get_session(self.config.session_id)
                self.orchestrator.set_session(loaded)

            self.orchestrator.set_step(Step.WELCOME)
            self._persist()
            await self._emit_step_changed()
        except Exception as e:
            await self.errors.report(e)

    async def next_step(self) -> None:
        try:
            await self._ensure_initialized()
            await self.orchestrator.advance()
            self._persist()
            await self._emit_step_changed()
            await self._emit_progress()
        except Exception as e:
            await self.errors.report(e)

    async def previous_step(self) -> None:
        try:
            self._check_alive()
            self.orchestrator.retreat()
            self._persist()
            await self._emit_step_changed()
            await self._emit_progress()
        except Exception as e:
            await self.errors.report(e)

    async def go_to_step(self, step: Step) -> None:
        """Unvalidated jump, see StepOrchestrator.set_step"""
        try:
            self._check_alive()
            self.orchestrator.set_step(step)
            self._persist()
            await self._emit_step_changed()
            await self._emit_progress()
        except Exception as e:
            await self.errors.report(e)

    async def update_data(self, updates: Optional[Dict[str, Any]] = None, **fields: Any) -> None:
        """Shallow update of the captured evidence, see StepOrchestrator.update_data"""
        try:
            self._check_alive()
            self.orchestrator.update_data({**(updates or {}), **fields})
            self._persist()
        except Exception as e:
            await self.errors.report(e)

    async def complete_verification(self) -> VerificationResult:
        try:
            await self._ensure_initialized()

            session = self.orchestrator.session
            if session is None or not session.id:
                raise SessionError("No active session found")

            result = await self.client.complete_verification(
                session.id,
                self.orchestrator.data,
                token=session.token,
            )
            self.orchestrator.set_result(result)
            self._persist()
            await self.events.emit(VERIFICATION_COMPLETE, result)
            return result
        except Exception as e:
            await self.errors.report(e)
            raise

    async def create_verification_session(
        self,
        tenant_id: str,
        id_type: str,
        user_id: Optional[str] = None,
        callback: Optional[str] = None,
        custom_data: Optional[Dict[str, Any]] = None,
    ) -> Session:
        try:
            await self._ensure_initialized()
            session = await self.client.create_session(
                tenant_id,
                id_type,
                user_id=user_id,
                callback=callback,
                custom_data=custom_data,
            )
            self.orchestrator.set_session(session)
            self._persist()
            return session
        except Exception as e:
            await self.errors.report(e)
            raise

    async def list_id_types(self) -> List[IdType]:
        """ID types for the current session's tenant (built-in catalog as fallback)"""
        try:
            await self._ensure_initialized()
            session = self.orchestrator.session
            return await self.client.list_id_types(
                session.id if session else None,
                session.token if session else None,
            )
        except Exception as e:
            await self.errors.report(e)
            return []

    async def set_session(self, session: Session) -> None:
        """Attach a session directly (handy in demo mode)"""
        try:
            self._check_alive()
            self.orchestrator.set_session(session)
            self._persist()
        except Exception as e:
            await self.errors.report(e)

    async def update_credentials(self, credentials: Credentials) -> None:
        """Rotate credentials for every call started from now on"""
        try:
            self._check_alive()
            self.gate.validate_credentials(credentials)
            self.client.update_credentials(credentials)
        except Exception as e:
            await self.errors.report(e)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> WorkflowState:
        return self.orchestrator.snapshot()

    @property
    def data(self) -> EvidenceData:
        return self.orchestrator.data

    @property
    def current_step(self) -> Step:
        return self.orchestrator.current_step

    @property
    def progress(self) -> ProgressInfo:
        return self.orchestrator.compute_progress()

    @property
    def session(self) -> Optional[Session]:
        return self.orchestrator.session

    @property
    def is_demo_mode(self) -> bool:
        return self._demo_mode

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def credentials_info(self) -> Dict[str, Any]:
        return self.context.credentials.info()

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: str, handler: Callable) -> None:
        """Subscribe to step_changed, progress_updated, verification_complete or error"""
        self.events.on(event, handler)

    def off(self, event: str, handler: Callable) -> None:
        self.events.off(event, handler)

    async def _emit_step_changed(self) -> None:
        await self.events.emit(STEP_CHANGED, self.orchestrator.current_step, self.orchestrator.data)

    async def _emit_progress(self) -> None:
        if self.config.enable_progress_tracking:
            await self.events.emit(PROGRESS_UPDATED, self.orchestrator.compute_progress())

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_alive(self) -> None:
        if self._destroyed:
            raise FlowDestroyedError("KYC flow has been destroyed")

    async def _ensure_initialized(self) -> None:
        self._check_alive()
        if not self._initialized:
            await self.initialize()

    def _persist(self) -> None:
        if self.config.enable_persistence:
            self.storage.save(self.orchestrator.state)
