"""
Step Orchestrator - Core Workflow Logic

Owns the workflow state and the rules for moving through the fixed step
sequence. Forward moves are gated by the ValidationGate; completing the
document and selfie steps submits the captured evidence to the backend.

Evidence submission is fire-and-forget: failures are logged and never block
advancement, so callers relying on OCR auto-population must re-check
``extracted_fields`` rather than assume a submission succeeded.

Concurrency: state is not locked. Callers must serialize mutating calls;
an overlapping ``advance()`` is rejected with OperationInProgressError.
"""

import copy
import logging
from typing import Any, Dict, Optional

from .client import VerificationClient
from .errors import OperationInProgressError
from .main import (
    STEP_DESCRIPTIONS,
    STEP_ORDER,
    STEP_TITLES,
    EvidenceData,
    FlowConfig,
    OCRFields,
    ProgressInfo,
    Session,
    Step,
    StepInfo,
    VerificationResult,
    WorkflowState,
)
from .validation import ValidationGate

logger = logging.getLogger(__name__)

EVIDENCE_FIELDS = frozenset(EvidenceData.__dataclass_fields__)


def initial_state() -> WorkflowState:
    """welcome step, empty evidence, no session or result"""
    return WorkflowState(
        current_step=Step.WELCOME,
        data=EvidenceData(),
        session=None,
        result=None,
        step_history=[Step.WELCOME],
    )


def _as_ocr_fields(fields: Any) -> OCRFields:
    if isinstance(fields, dict):
        fields = OCRFields.from_dict(fields)
    if not isinstance(fields, OCRFields):
        raise TypeError(f"extracted_fields must be OCRFields or dict, got {type(fields).__name__}")
    return fields


class StepOrchestrator:
    """
    State machine for one verification workflow.

    Steps: welcome -> idTypeSelection -> idScanFront -> idScanBack ->
    ocrPreview -> selfie -> review -> processing -> result
    """

    def __init__(
        self,
        client: VerificationClient,
        gate: Optional[ValidationGate] = None,
        config: Optional[FlowConfig] = None,
    ):
        self.client = client
        self.config = config or client.config
        self.gate = gate or ValidationGate(max_file_size=self.config.max_file_size)
        self._state = initial_state()
        self._advancing = False
        # Side-effect failures only surface at WARNING when debugging
        self._side_effect_log_level = logging.WARNING if self.config.debug else logging.DEBUG

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def current_step(self) -> Step:
        return self._state.current_step

    @property
    def data(self) -> EvidenceData:
        return self._state.data

    @property
    def session(self) -> Optional[Session]:
        return self._state.session

    @property
    def result(self) -> Optional[VerificationResult]:
        return self._state.result

    def snapshot(self) -> WorkflowState:
        """Independent copy of the current state"""
        return copy.deepcopy(self._state)

    def restore(self, state: WorkflowState) -> None:
        self._state = copy.deepcopy(state)
        logger.info(f"Workflow restored at step {state.current_step.value}")

    def set_session(self, session: Session) -> None:
        self._state.session = session

    def set_result(self, result: VerificationResult) -> None:
        self._state.result = result

    # =========================================================================
    # Navigation
    # =========================================================================

    def set_step(self, step: Step) -> None:
        """
        Jump straight to a step.

        Intentional escape hatch for deep links and demos: no validation.
        """
        step = Step(step)
        self._state.current_step = step
        self._state.step_history.append(step)
        logger.debug(f"Jumped to step {step.value}")

    async def advance(self) -> Step:
        """
        Validate the current step, run its side effects and move forward.

        Raises ValidationError (and stays put) when the captured data is not
        admissible. Advancing from the last step keeps the workflow there.
        """
        if self._advancing:
            raise OperationInProgressError("Another step transition is still in progress")

        self._advancing = True
        try:
            step = self._state.current_step
            self.gate.validate(step, self._state.data).raise_for_violations()

            await self._run_side_effects(step)

            index = STEP_ORDER.index(step)
            next_step = STEP_ORDER[min(index + 1, len(STEP_ORDER) - 1)]
            self._state.current_step = next_step
            self._state.step_history.append(next_step)
            logger.info(f"Advanced {step.value} -> {next_step.value}")
            return next_step
        finally:
            self._advancing = False

    def retreat(self) -> Step:
        """Move one step back; stays on welcome. No validation."""
        index = STEP_ORDER.index(self._state.current_step)
        previous = STEP_ORDER[max(index - 1, 0)]
        self._state.current_step = previous
        self._state.step_history.append(previous)
        logger.debug(f"Moved back to step {previous.value}")
        return previous

    # =========================================================================
    # Data updates
    # =========================================================================

    def update_data(self, updates: Dict[str, Any]) -> None:
        """
        Shallow-merge top-level evidence fields.

        Only the supplied keys change. An ``extracted_fields`` entry replaces
        the whole OCR object; it is never merged field by field.
        """
        unknown = set(updates) - EVIDENCE_FIELDS
        if unknown:
            raise ValueError(f"Unknown evidence fields: {sorted(unknown)}")

        # Convert before touching state so a bad value leaves nothing applied
        updates = dict(updates)
        if "extracted_fields" in updates:
            updates["extracted_fields"] = _as_ocr_fields(updates["extracted_fields"])

        for key, value in updates.items():
            setattr(self._state.data, key, value)

    def replace_extracted_fields(self, fields: Any) -> None:
        """Swap in a complete OCR object (dicts are converted first)"""
        self._state.data.extracted_fields = _as_ocr_fields(fields)

    def reset(self) -> None:
        self._state = initial_state()
        logger.info("Workflow reset")

    # =========================================================================
    # Progress
    # =========================================================================

    def compute_progress(self) -> ProgressInfo:
        current_index = STEP_ORDER.index(self._state.current_step)
        steps = [
            StepInfo(
                step=step,
                title=STEP_TITLES[step],
                description=STEP_DESCRIPTIONS[step],
                is_completed=index < current_index,
                is_current=index == current_index,
                can_go_back=index < current_index,
            )
            for index, step in enumerate(STEP_ORDER)
        ]
        return ProgressInfo(
            current_step=self._state.current_step,
            current_step_index=current_index,
            total_steps=len(STEP_ORDER),
            steps=steps,
            can_go_next=current_index < len(STEP_ORDER) - 1,
            can_go_back=current_index > 0,
        )

    # =========================================================================
    # Side effects
    # =========================================================================

    async def _run_side_effects(self, step: Step) -> None:
        data = self._state.data
        if step == Step.ID_SCAN_BACK:
            if self.config.enable_auto_ocr and data.front_image and data.back_image:
                await self._submit_document()
        elif step == Step.SELFIE:
            if self.config.enable_face_verification and data.front_image and data.selfie_image:
                await self._submit_face()

    async def _submit_document(self) -> None:
        session = self._state.session
        data = self._state.data
        if not session or not session.id:
            return

        try:
            response = await self.client.submit_document(
                session.id,
                data.id_type,
                data.front_image,
                data.back_image,
                token=session.token,
            )
            extracted = response.data.get("extracted_fields") if isinstance(response.data, dict) else None
            if not isinstance(extracted, dict):
                if extracted:
                    logger.log(self._side_effect_log_level, f"Ignoring malformed extracted_fields: {extracted!r}")
                return
            if extracted:
                self.replace_extracted_fields(data.extracted_fields.merged_with(extracted))
                logger.info(f"OCR fields populated from backend for session {session.id}")
        except Exception as e:
            logger.log(self._side_effect_log_level, f"Document verification failed: {e}")

    async def _submit_face(self) -> None:
        session = self._state.session
        data = self._state.data
        if not session or not session.id:
            return

        try:
            await self.client.submit_face(
                session.id,
                data.selfie_image,
                data.front_image,
                token=session.token,
            )
        except Exception as e:
            logger.log(self._side_effect_log_level, f"Face verification failed: {e}")
