"""
Shared fixtures for the kyc_flow tests
"""

import pytest

from kyc_flow.main import Credentials, EvidenceFile, FlowConfig, OCRFields


def make_image(name: str = "front.jpg", content_type: str = "image/jpeg", size: int = 1024) -> EvidenceFile:
    return EvidenceFile(filename=name, content=b"\xff" * size, content_type=content_type)


def complete_ocr() -> OCRFields:
    return OCRFields(
        full_name="Abebe Kebede",
        date_of_birth="1990-05-17",
        date_of_expiry="2030-01-01",
        gender="M",
        id_number="ET-123456",
        issuing_authority="Government of Ethiopia",
    )


@pytest.fixture
def credentials():
    return Credentials(api_key="test-api-key-123", tenant_id="tenant-1", user_id="user-1")


@pytest.fixture
def config(tmp_path):
    return FlowConfig(
        api_base_url="http://evidence.test",
        result_service_url="http://results.test",
        storage_path=tmp_path,
        retry_attempts=2,
        retry_delay_ms=0,
    )
