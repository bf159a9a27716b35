import json
from datetime import datetime

import pytest
from conftest import make_enriched

from photo_copier import config
from photo_copier.config import OperationMode
from photo_copier.exceptions import TransactionLogError
from photo_copier.models import OperationRecord, TransactionLog, TransactionStatus
from photo_copier.organization.mover import FileMover
from photo_copier.organization.rules import DestinationPlanner
from photo_copier.organization.transactions import (
    RollbackService, TransactionLogger, list_transaction_logs, load_transaction_log,
)


def _run(options, files):
    transaction = TransactionLogger.for_destination(options.destination)
    transaction.begin(options)
    summary = FileMover(options).execute(DestinationPlanner(options).plan(files), transaction)
    transaction.complete()
    return transaction, summary


@pytest.fixture
def two_photos(src, write_file):
    a = write_file(src / "a.jpg", b"aaa")
    b = write_file(src / "trip" / "b.jpg", b"bbb")
    return [make_enriched(a, datetime(2024, 1, 1)), make_enriched(b, datetime(2024, 2, 2))]


def test_log_file_written_under_destination(make_options, dest):
    options = make_options()
    transaction = TransactionLogger.for_destination(dest)
    log = transaction.begin(options)

    assert transaction.path.parent == dest / config.TRANSACTION_LOG_DIR
    assert transaction.path.name.startswith(config.TRANSACTION_LOG_PREFIX)
    assert transaction.path.name.endswith(f"-{log.transaction_id}.json")

    raw = json.loads(transaction.path.read_text(encoding="utf-8"))
    assert raw["status"] == "in_progress"
    assert raw["operations"] == []
    assert raw["template"] == options.template


def test_log_saved_after_every_operation(make_options, dest, tmp_path):
    transaction = TransactionLogger.for_destination(dest)
    transaction.begin(make_options())
    transaction.record(OperationRecord(tmp_path / "s.jpg", dest / "d.jpg", OperationMode.COPY,
                                       datetime(2024, 1, 1), 3, "abc"))

    reloaded = load_transaction_log(transaction.path)
    assert len(reloaded.operations) == 1
    op = reloaded.operations[0]
    assert op.destination == dest / "d.jpg"
    assert op.checksum == "abc"
    assert op.size_bytes == 3
    assert not list(transaction.path.parent.glob("*.tmp"))


def test_complete_and_fail(make_options, dest):
    transaction = TransactionLogger.for_destination(dest)
    transaction.begin(make_options())
    transaction.fail("disk full")

    log = load_transaction_log(transaction.path)
    assert log.status == TransactionStatus.FAILED
    assert log.error == "disk full"
    assert log.ended_at is not None


def test_complete_before_begin():
    with pytest.raises(TransactionLogError):
        TransactionLogger.for_destination("/tmp/nowhere").complete()


def test_discard(make_options, dest):
    transaction = TransactionLogger.for_destination(dest)
    transaction.begin(make_options())
    transaction.discard()
    assert not transaction.path.exists()


def test_rollback_copy_removes_copies_and_directories(make_options, two_photos, dest):
    options = make_options(template="{year}/{month}/{name}{ext}")
    transaction, summary = _run(options, two_photos)
    assert len(summary.completed) == 2

    result = RollbackService().rollback(transaction.path)

    assert result.success
    assert result.files_restored == 2
    assert result.directories_removed == 3
    assert not (dest / "2024").exists()
    assert all(f.path.exists() for f in two_photos)
    assert load_transaction_log(transaction.path).status == TransactionStatus.ROLLED_BACK


def test_rollback_move_restores_sources(make_options, two_photos, src, dest):
    options = make_options(mode=OperationMode.MOVE, template="{year}/{name}{ext}")
    transaction, summary = _run(options, two_photos)
    assert not (src / "trip" / "b.jpg").exists()

    result = RollbackService().rollback(transaction.path)

    assert result.success
    assert (src / "a.jpg").read_bytes() == b"aaa"
    assert (src / "trip" / "b.jpg").read_bytes() == b"bbb"
    assert not (dest / "2024").exists()


def test_rollback_recreates_missing_source_folder(make_options, two_photos, src):
    options = make_options(mode=OperationMode.MOVE, template="{year}/{name}{ext}")
    transaction, _ = _run(options, two_photos)
    (src / "trip").rmdir()

    assert RollbackService().rollback(transaction.path).success
    assert (src / "trip" / "b.jpg").exists()


def test_rollback_reports_missing_moved_file(make_options, two_photos, dest):
    options = make_options(mode=OperationMode.MOVE, template="{year}/{name}{ext}")
    transaction, _ = _run(options, two_photos)
    (dest / "2024" / "b.jpg").unlink()

    result = RollbackService().rollback(transaction.path)

    assert not result.success
    assert result.files_failed == 1
    assert result.files_restored == 1
    assert "b.jpg" in result.errors[0]
    assert load_transaction_log(transaction.path).status == TransactionStatus.FAILED


def test_rollback_keeps_directories_with_other_content(make_options, two_photos, dest):
    options = make_options(template="{year}/{name}{ext}")
    transaction, _ = _run(options, two_photos)
    (dest / "2024" / "added-later.txt").write_text("mine")

    result = RollbackService().rollback(transaction.path)
    assert result.success
    assert (dest / "2024" / "added-later.txt").exists()


def test_rollback_refuses_dry_run(tmp_path):
    log = TransactionLog("abc", datetime(2024, 1, 1), tmp_path, tmp_path, "{name}{ext}", dry_run=True)
    path = tmp_path / "photo-copier-dry.json"
    path.write_text(json.dumps(log.to_dict()), encoding="utf-8")

    with pytest.raises(TransactionLogError, match="dry run"):
        RollbackService().rollback(path)


def test_rollback_refuses_twice(make_options, two_photos):
    transaction, _ = _run(make_options(), two_photos)
    RollbackService().rollback(transaction.path)

    with pytest.raises(TransactionLogError, match="already rolled back"):
        RollbackService().rollback(transaction.path)


def test_missing_and_corrupt_logs(tmp_path):
    with pytest.raises(TransactionLogError, match="not found"):
        load_transaction_log(tmp_path / "nope.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(TransactionLogError, match="parse"):
        load_transaction_log(bad)


def test_list_transaction_logs(make_options, two_photos, dest):
    transaction, _ = _run(make_options(), two_photos)
    (dest / config.TRANSACTION_LOG_DIR / f"{config.TRANSACTION_LOG_PREFIX}broken.json").write_text("{")

    logs = list_transaction_logs(dest)
    assert len(logs) == 1
    info = logs[0]
    assert info.path == transaction.path
    assert info.status == TransactionStatus.COMPLETED
    assert info.operation_count == 2

    assert list_transaction_logs(dest / config.TRANSACTION_LOG_DIR)[0].transaction_id == info.transaction_id
    assert list_transaction_logs(dest / "missing") == []
