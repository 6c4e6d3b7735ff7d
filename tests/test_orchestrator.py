"""
Tests for the StepOrchestrator
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from kyc_flow.errors import NetworkError, OperationInProgressError, ValidationError
from kyc_flow.main import (
    STEP_ORDER,
    APIResponse,
    FlowConfig,
    OCRFields,
    Session,
    Step,
)
from kyc_flow.orchestrator import StepOrchestrator
from kyc_flow.validation import ValidationGate

from conftest import complete_ocr, make_image


@pytest.fixture
def client():
    """Client double; only the evidence submissions are exercised"""
    mock = MagicMock()
    mock.config = FlowConfig(api_base_url="http://evidence.test", storage_path=None)
    mock.submit_document = AsyncMock(return_value=APIResponse(success=True, data={}))
    mock.submit_face = AsyncMock(return_value=APIResponse(success=True, data={}))
    return mock


@pytest.fixture
def orchestrator(client):
    return StepOrchestrator(client)


def fill_everything(orchestrator):
    orchestrator.update_data({
        "id_type": "national_id",
        "front_image": make_image("front.jpg"),
        "back_image": make_image("back.jpg"),
        "selfie_image": make_image("selfie.jpg"),
        "extracted_fields": complete_ocr(),
    })


class TestInitialState:
    """Deterministic starting point"""

    def test_initial_state(self, orchestrator):
        state = orchestrator.state
        assert state.current_step == Step.WELCOME
        assert state.step_history == [Step.WELCOME]
        assert state.data.id_type == ""
        assert state.data.front_image is None
        assert state.session is None
        assert state.result is None

    def test_step_order(self):
        assert [s.value for s in STEP_ORDER] == [
            "welcome",
            "idTypeSelection",
            "idScanFront",
            "idScanBack",
            "ocrPreview",
            "selfie",
            "review",
            "processing",
            "result",
        ]


class TestNavigation:
    """advance / retreat / set_step"""

    @pytest.mark.asyncio
    async def test_advance_from_welcome(self, orchestrator):
        assert await orchestrator.advance() == Step.ID_TYPE_SELECTION
        assert orchestrator.state.step_history == [Step.WELCOME, Step.ID_TYPE_SELECTION]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("step", list(Step))
    async def test_failed_validation_keeps_step(self, orchestrator, step):
        orchestrator.update_data({"extracted_fields": OCRFields(date_of_expiry="", issuing_authority="")})
        orchestrator.set_step(step)
        expected = ValidationGate().validate(step, orchestrator.data)

        if expected.is_valid:
            await orchestrator.advance()
            return

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.advance()

        assert orchestrator.current_step == step
        assert exc_info.value.violations == expected.violations

    @pytest.mark.asyncio
    async def test_advance_from_result_is_idempotent(self, orchestrator):
        orchestrator.set_step(Step.RESULT)
        assert await orchestrator.advance() == Step.RESULT
        assert await orchestrator.advance() == Step.RESULT
        assert orchestrator.current_step == Step.RESULT

    def test_retreat_from_welcome_is_idempotent(self, orchestrator):
        assert orchestrator.retreat() == Step.WELCOME
        assert orchestrator.retreat() == Step.WELCOME
        assert orchestrator.current_step == Step.WELCOME

    def test_retreat_does_not_validate(self, orchestrator):
        orchestrator.set_step(Step.SELFIE)
        assert orchestrator.retreat() == Step.OCR_PREVIEW

    def test_set_step_bypasses_validation(self, orchestrator):
        orchestrator.set_step(Step.REVIEW)
        assert orchestrator.current_step == Step.REVIEW
        assert orchestrator.state.step_history == [Step.WELCOME, Step.REVIEW]

    def test_set_step_accepts_wire_value(self, orchestrator):
        orchestrator.set_step("ocrPreview")
        assert orchestrator.current_step == Step.OCR_PREVIEW

    @pytest.mark.asyncio
    async def test_passport_scenario(self, orchestrator):
        """id type passes, then the front scan without an image fails"""
        orchestrator.set_step(Step.ID_TYPE_SELECTION)
        orchestrator.update_data({"id_type": "passport"})

        await orchestrator.advance()
        assert orchestrator.current_step == Step.ID_SCAN_FRONT

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.advance()
        assert "Front image must be captured" in exc_info.value.violations
        assert orchestrator.current_step == Step.ID_SCAN_FRONT

    @pytest.mark.asyncio
    async def test_full_walkthrough(self, orchestrator):
        fill_everything(orchestrator)
        for _ in range(len(STEP_ORDER) - 1):
            await orchestrator.advance()
        assert orchestrator.current_step == Step.RESULT
        assert len(orchestrator.state.step_history) == len(STEP_ORDER)

    @pytest.mark.asyncio
    async def test_overlapping_advance_rejected(self, orchestrator, client):
        release = asyncio.Event()

        async def slow_submit(*args, **kwargs):
            await release.wait()
            return APIResponse(success=True, data={})

        client.submit_document = AsyncMock(side_effect=slow_submit)
        fill_everything(orchestrator)
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.set_step(Step.ID_SCAN_BACK)

        first = asyncio.ensure_future(orchestrator.advance())
        await asyncio.sleep(0)

        with pytest.raises(OperationInProgressError):
            await orchestrator.advance()

        release.set()
        assert await first == Step.OCR_PREVIEW


class TestDataUpdates:
    """Shallow merge contract"""

    def test_partial_update_keeps_other_fields(self, orchestrator):
        front = make_image("front.jpg")
        orchestrator.update_data({"front_image": front})
        orchestrator.update_data({"id_type": "passport"})

        assert orchestrator.data.front_image is front
        assert orchestrator.data.id_type == "passport"

    def test_extracted_fields_replaced_not_merged(self, orchestrator):
        first = OCRFields(full_name="First", gender="F", id_number="1")
        second = OCRFields(full_name="Second")

        orchestrator.update_data({"extracted_fields": first})
        orchestrator.update_data({"extracted_fields": second})

        assert orchestrator.data.extracted_fields is second
        assert orchestrator.data.extracted_fields.gender == ""

    def test_extracted_fields_from_dict(self, orchestrator):
        orchestrator.update_data({"extracted_fields": {"fullName": "Abebe", "idNumber": "42"}})

        fields = orchestrator.data.extracted_fields
        assert fields.full_name == "Abebe"
        assert fields.id_number == "42"
        assert fields.gender == ""

    def test_unknown_field_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.update_data({"favourite_colour": "blue"})

    def test_bad_extracted_fields_applies_nothing(self, orchestrator):
        orchestrator.update_data({"id_type": "passport"})

        with pytest.raises(TypeError):
            orchestrator.update_data({"id_type": "national_id", "extracted_fields": 5})

        assert orchestrator.data.id_type == "passport"
        assert orchestrator.data.extracted_fields == OCRFields()

    @pytest.mark.asyncio
    async def test_reset_restores_initial_state(self, orchestrator):
        fill_everything(orchestrator)
        orchestrator.set_session(Session(id="sess-1"))
        await orchestrator.advance()
        orchestrator.set_step(Step.REVIEW)

        orchestrator.reset()

        state = orchestrator.state
        assert state.current_step == Step.WELCOME
        assert state.data.id_type == ""
        assert state.data.front_image is None
        assert state.data.back_image is None
        assert state.data.selfie_image is None
        assert state.data.extracted_fields == OCRFields()
        assert state.session is None
        assert state.step_history == [Step.WELCOME]

    def test_snapshot_is_independent(self, orchestrator):
        snapshot = orchestrator.snapshot()
        orchestrator.update_data({"id_type": "passport"})
        assert snapshot.data.id_type == ""


class TestProgress:
    """compute_progress"""

    def test_progress_at_start(self, orchestrator):
        progress = orchestrator.compute_progress()
        assert progress.current_step_index == 0
        assert progress.total_steps == 9
        assert progress.can_go_next is True
        assert progress.can_go_back is False
        assert progress.steps[0].is_current
        assert progress.steps[0].title == "Welcome"

    def test_progress_midway(self, orchestrator):
        orchestrator.set_step(Step.OCR_PREVIEW)
        progress = orchestrator.compute_progress()

        assert progress.current_step_index == 4
        assert [s.is_completed for s in progress.steps[:5]] == [True, True, True, True, False]
        assert progress.steps[4].is_current
        assert progress.steps[3].can_go_back
        assert not progress.steps[5].can_go_back
        assert progress.can_go_back

    def test_progress_at_end(self, orchestrator):
        orchestrator.set_step(Step.RESULT)
        progress = orchestrator.compute_progress()
        assert progress.can_go_next is False
        assert progress.to_dict()["current_step"] == "result"


class TestSideEffects:
    """Evidence submission on step completion"""

    @pytest.mark.asyncio
    async def test_document_submission_populates_ocr(self, orchestrator, client):
        client.submit_document.return_value = APIResponse(
            success=True,
            data={"extracted_fields": {"fullName": "Abebe Kebede", "idNumber": "ET-1"}},
        )
        orchestrator.set_session(Session(id="sess-1", token="tok"))
        orchestrator.update_data({
            "id_type": "national_id",
            "front_image": make_image("front.jpg"),
            "back_image": make_image("back.jpg"),
            "extracted_fields": OCRFields(gender="F"),
        })
        orchestrator.set_step(Step.ID_SCAN_BACK)

        await orchestrator.advance()

        client.submit_document.assert_awaited_once()
        args = client.submit_document.await_args
        assert args.args[0] == "sess-1"
        assert args.kwargs["token"] == "tok"
        fields = orchestrator.data.extracted_fields
        assert fields.full_name == "Abebe Kebede"
        assert fields.id_number == "ET-1"
        assert fields.gender == "F"
        assert orchestrator.current_step == Step.OCR_PREVIEW

    @pytest.mark.asyncio
    async def test_document_failure_does_not_block(self, orchestrator, client):
        client.submit_document.side_effect = NetworkError("down")
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({
            "front_image": make_image("front.jpg"),
            "back_image": make_image("back.jpg"),
        })
        orchestrator.set_step(Step.ID_SCAN_BACK)

        await orchestrator.advance()

        assert orchestrator.current_step == Step.OCR_PREVIEW
        assert orchestrator.data.extracted_fields == OCRFields()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [
        {"extracted_fields": "ABEBE KEBEDE"},
        {"extracted_fields": ["ABEBE", "KEBEDE"]},
        {"extracted_fields": 7},
        ["ABEBE KEBEDE"],
        "ABEBE KEBEDE",
    ])
    async def test_malformed_document_answer_does_not_block(self, orchestrator, client, data):
        client.submit_document.return_value = APIResponse(success=True, data=data)
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({
            "front_image": make_image("front.jpg"),
            "back_image": make_image("back.jpg"),
            "extracted_fields": OCRFields(gender="F"),
        })
        orchestrator.set_step(Step.ID_SCAN_BACK)

        await orchestrator.advance()

        client.submit_document.assert_awaited_once()
        assert orchestrator.current_step == Step.OCR_PREVIEW
        assert orchestrator.data.extracted_fields == OCRFields(gender="F")

    @pytest.mark.asyncio
    async def test_no_submission_without_session(self, orchestrator, client):
        orchestrator.update_data({
            "front_image": make_image("front.jpg"),
            "back_image": make_image("back.jpg"),
        })
        orchestrator.set_step(Step.ID_SCAN_BACK)

        await orchestrator.advance()

        client.submit_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_submission_when_auto_ocr_disabled(self, client):
        client.config.enable_auto_ocr = False
        orchestrator = StepOrchestrator(client)
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({
            "front_image": make_image("front.jpg"),
            "back_image": make_image("back.jpg"),
        })
        orchestrator.set_step(Step.ID_SCAN_BACK)

        await orchestrator.advance()

        client.submit_document.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_face_submission(self, orchestrator, client):
        front = make_image("front.jpg")
        selfie = make_image("selfie.jpg")
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({"front_image": front, "selfie_image": selfie})
        orchestrator.set_step(Step.SELFIE)

        await orchestrator.advance()

        client.submit_face.assert_awaited_once_with("sess-1", selfie, front, token=None)
        assert orchestrator.current_step == Step.REVIEW

    @pytest.mark.asyncio
    async def test_face_failure_does_not_block(self, orchestrator, client):
        client.submit_face.side_effect = RuntimeError("boom")
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({
            "front_image": make_image("front.jpg"),
            "selfie_image": make_image("selfie.jpg"),
        })
        orchestrator.set_step(Step.SELFIE)

        await orchestrator.advance()

        assert orchestrator.current_step == Step.REVIEW

    @pytest.mark.asyncio
    async def test_no_face_submission_without_front_image(self, orchestrator, client):
        orchestrator.set_session(Session(id="sess-1"))
        orchestrator.update_data({"selfie_image": make_image("selfie.jpg")})
        orchestrator.set_step(Step.SELFIE)

        await orchestrator.advance()

        client.submit_face.assert_not_awaited()
