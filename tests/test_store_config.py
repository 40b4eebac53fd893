import pytest

from auditor.config import AuditConfig
from auditor.errors import BaselineNotFound, InvalidFileRef, RunNotFound
from auditor.models.types import Run, RunStatus, Severity, worst_severity
from auditor.storage.files import FileStore
from auditor.storage.store import MemoryStore


def test_from_env_reads_overrides():
    cfg = AuditConfig.from_env({
        "AUDIT_MAX_PAGES": "12",
        "AUDIT_DIFF_THRESHOLD": "2.5",
        "AUDIT_AUTO_BASELINE": "true",
        "AUDIT_EXCLUDED_PATTERNS": "/private, /drafts,",
        "AUDIT_CONCURRENCY": "0",
    })
    assert cfg.max_pages == 12
    assert cfg.diff_threshold_pct == 2.5
    assert cfg.auto_baseline
    assert cfg.excluded_patterns == ["/private", "/drafts"]
    assert cfg.concurrency == 1


def test_from_env_ignores_garbage():
    cfg = AuditConfig.from_env({"AUDIT_MAX_DEPTH": "deep", "AUDIT_LINK_TIMEOUT_S": "soon"})
    assert cfg.max_depth == AuditConfig().max_depth
    assert cfg.link_check_timeout_s == AuditConfig().link_check_timeout_s


def test_defaults():
    cfg = AuditConfig()
    assert (cfg.max_depth, cfg.max_pages) == (2, 30)
    assert cfg.viewport == {"width": 1440, "height": 900}
    assert not cfg.auto_baseline


def test_store_lookups_raise_typed_errors():
    store = MemoryStore()
    with pytest.raises(RunNotFound):
        store.get_run("nope")
    with pytest.raises(BaselineNotFound):
        store.update_baseline("nope", is_active=False)


def test_update_run_replaces_the_record():
    store = MemoryStore()
    run = store.create_run(Run(site_id="site"))
    updated = store.update_run(run.id, status=RunStatus.RUNNING, pages_processed=3)
    assert updated.status == RunStatus.RUNNING
    assert store.get_run(run.id).pages_processed == 3
    assert run.status == RunStatus.PENDING


def test_run_status_terminal():
    assert RunStatus.COMPLETED.terminal and RunStatus.FAILED.terminal
    assert not RunStatus.PENDING.terminal and not RunStatus.RUNNING.terminal


def test_worst_severity():
    assert worst_severity([Severity.MINOR, Severity.CRITICAL, Severity.MAJOR]) == Severity.CRITICAL
    assert worst_severity([Severity.MINOR]) == Severity.MINOR


def test_file_refs_stay_under_root(tmp_path):
    files = FileStore(tmp_path)
    ref = files.screenshot_ref("run1", "https://example.test/a?b=c")
    assert ref.startswith("screenshots/run1/")
    assert files.resolve(ref).parent.is_dir()
    assert files.resolve(ref).is_relative_to(tmp_path)


@pytest.mark.parametrize("ref", ["/etc/passwd", "../outside.png", "screenshots/../../outside.png"])
def test_file_refs_cannot_escape_root(tmp_path, ref):
    files = FileStore(tmp_path / "uploads")
    with pytest.raises(InvalidFileRef):
        files.resolve(ref)
