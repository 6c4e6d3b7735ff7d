"""
Tests for snapshot persistence
"""

from unittest.mock import patch

import pytest

from kyc_flow import KYCFlow
from kyc_flow.main import (
    EvidenceData,
    FlowConfig,
    Session,
    Step,
    VerificationResult,
    VerificationStatus,
    WorkflowState,
)
from kyc_flow.storage import JsonFileStore, MemoryStore

from conftest import complete_ocr, make_image


def sample_state() -> WorkflowState:
    return WorkflowState(
        current_step=Step.SELFIE,
        data=EvidenceData(
            id_type="passport",
            front_image=make_image("front.jpg", size=16),
            extracted_fields=complete_ocr(),
        ),
        session=Session(id="sess-1", token="tok", status="pending"),
        result=VerificationResult(status=VerificationStatus.PENDING, decision="PENDING"),
        step_history=[Step.WELCOME, Step.ID_TYPE_SELECTION, Step.SELFIE],
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return JsonFileStore(tmp_path / "state")


class TestPersistenceCache:
    """save / load / clear contract"""

    def test_load_empty(self, store):
        assert store.load() is None

    def test_save_and_load(self, store):
        state = sample_state()
        store.save(state)

        loaded = store.load()
        assert loaded.current_step == Step.SELFIE
        assert loaded.step_history == state.step_history
        assert loaded.data.id_type == "passport"
        assert loaded.data.front_image.content == state.data.front_image.content
        assert loaded.data.front_image.content_type == "image/jpeg"
        assert loaded.data.back_image is None
        assert loaded.data.extracted_fields == state.data.extracted_fields
        assert loaded.session == state.session
        assert loaded.result.status == VerificationStatus.PENDING
        assert loaded.result.timestamp == state.result.timestamp

    def test_clear(self, store):
        store.save(sample_state())
        store.clear()
        assert store.load() is None

    def test_clear_when_empty(self, store):
        store.clear()
        assert store.load() is None

    def test_disabled_store_is_noop(self, tmp_path):
        store = JsonFileStore(tmp_path, enabled=False)
        store.save(sample_state())
        assert not store.path.exists()
        assert store.load() is None


class TestBestEffort:
    """Storage failures never propagate"""

    def test_corrupt_file_loads_as_none(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.path.write_text("{not json")
        assert store.load() is None

    def test_unknown_step_loads_as_none(self, tmp_path):
        store = JsonFileStore(tmp_path)
        store.path.write_text('{"current_step": "teleport"}')
        assert store.load() is None

    def test_write_failure_is_swallowed(self, tmp_path):
        store = JsonFileStore(tmp_path)
        with patch.object(JsonFileStore, "_write", side_effect=OSError("disk full")):
            store.save(sample_state())
        assert store.load() is None

    def test_remove_failure_is_swallowed(self):
        store = MemoryStore()
        with patch.object(MemoryStore, "_remove", side_effect=RuntimeError("locked")):
            store.clear()


class TestDefaultStore:
    """Where a flow keeps its snapshot when no store is passed in"""

    def test_memory_unless_path_configured(self, monkeypatch, credentials):
        monkeypatch.delenv("KYC_STORAGE_PATH", raising=False)

        config = FlowConfig()
        flow = KYCFlow(credentials, config)

        assert config.storage_path is None
        assert isinstance(flow.storage, MemoryStore)

    def test_file_store_from_environment(self, monkeypatch, tmp_path, credentials):
        monkeypatch.setenv("KYC_STORAGE_PATH", str(tmp_path / "snapshots"))

        flow = KYCFlow(credentials, FlowConfig())

        assert isinstance(flow.storage, JsonFileStore)
        assert flow.storage.path == tmp_path / "snapshots" / "kyc_flow_state.json"
