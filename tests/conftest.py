import pytest

from auditor.config import AuditConfig
from fakes import FakeBrowser


@pytest.fixture
def config(tmp_path) -> AuditConfig:
    return AuditConfig(storage_dir=str(tmp_path / "uploads"))


@pytest.fixture
def fake_browser() -> FakeBrowser:
    return FakeBrowser()
