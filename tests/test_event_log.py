import asyncio
import json
import os
import stat
import time

import pytest

import event_log as event_log_module
from errors import PersistenceError
from event_log import EventLog
from models import ReportRecord


class SimulatedCrash(BaseException):
    """Stands in for the process dying mid-append."""


def make_record(device_key="dev-1", status="online", created_at="2026-01-01T00:00:00+00:00"):
    return ReportRecord(
        device_key=device_key,
        device_label="esp32",
        status=status,
        created_at=created_at
    )


def stray_temp_files(path):
    return list(path.parent.glob(f".{path.name}.*.tmp"))


def test_append_returns_running_total_in_arrival_order(tmp_path):
    log = EventLog(tmp_path / "logs.json")

    async def scenario():
        assert await log.append(make_record(status="booting")) == 1
        assert await log.append(make_record(status="online")) == 2
        return await log.read_all()

    records = asyncio.run(scenario())

    assert [r.status for r in records] == ["booting", "online"]
    assert stray_temp_files(log.path) == []


def test_persisted_document_is_a_json_array(tmp_path):
    log = EventLog(tmp_path / "nested" / "logs.json")
    asyncio.run(log.append(make_record()))

    document = json.loads(log.path.read_text(encoding="utf-8"))

    assert isinstance(document, list)
    assert document[0]["device_key"] == "dev-1"
    assert document[0]["device_label"] == "esp32"
    assert document[0]["created_at"] == "2026-01-01T00:00:00+00:00"
    assert document[0]["resent"] is False


@pytest.mark.parametrize("count", [1, 50, 500])
def test_concurrent_appends_lose_nothing(tmp_path, count):
    log = EventLog(tmp_path / "logs.json")

    async def scenario():
        await asyncio.gather(*(
            log.append(make_record(device_key=f"dev-{i % 7}", status=f"s{i}"))
            for i in range(count)
        ))
        return await log.read_all()

    records = asyncio.run(scenario())

    assert len(records) == count
    assert sorted(r.status for r in records) == sorted(f"s{i}" for i in range(count))


def test_missing_file_reads_as_empty(tmp_path):
    log = EventLog(tmp_path / "logs.json")

    assert asyncio.run(log.read_all()) == []


def test_corrupt_file_reads_as_empty_and_heals_on_append(tmp_path):
    path = tmp_path / "logs.json"
    path.write_text('[{"device_key": "dev-1", "sta', encoding="utf-8")
    log = EventLog(path)

    assert asyncio.run(log.read_all()) == []
    assert asyncio.run(log.append(make_record())) == 1
    assert len(json.loads(path.read_text(encoding="utf-8"))) == 1


def test_wrong_shape_reads_as_empty(tmp_path):
    path = tmp_path / "logs.json"
    path.write_text('{"not": "a list"}', encoding="utf-8")

    assert asyncio.run(EventLog(path).read_all()) == []


def test_clear_empties_the_log(tmp_path):
    log = EventLog(tmp_path / "logs.json")

    async def scenario():
        await log.append(make_record())
        await log.append(make_record())
        await log.clear()
        return await log.read_all()

    assert asyncio.run(scenario()) == []
    assert json.loads(log.path.read_text(encoding="utf-8")) == []


def test_failed_write_raises_and_keeps_previous_content(tmp_path, monkeypatch):
    log = EventLog(tmp_path / "logs.json")
    asyncio.run(log.append(make_record(status="first")))
    before = log.path.read_bytes()

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(event_log_module.os, "replace", broken_replace)

    with pytest.raises(PersistenceError):
        asyncio.run(log.append(make_record(status="second")))

    assert log.path.read_bytes() == before
    assert stray_temp_files(log.path) == []


def test_crash_before_rename_leaves_old_log_and_recovers(tmp_path, monkeypatch):
    path = tmp_path / "logs.json"
    log = EventLog(path)
    asyncio.run(log.append(make_record(status="survivor")))
    before = path.read_bytes()

    def crash(src, dst):
        raise SimulatedCrash()

    monkeypatch.setattr(event_log_module.os, "replace", crash)
    with pytest.raises(SimulatedCrash):
        log._persist([make_record(status="survivor"), make_record(status="lost")])
    monkeypatch.undo()

    assert path.read_bytes() == before
    assert len(stray_temp_files(path)) == 1

    # "restart"
    restarted = EventLog(path)
    assert restarted.recover() == 1
    assert stray_temp_files(path) == []

    records = asyncio.run(restarted.read_all())
    assert [r.status for r in records] == ["survivor"]


def test_recover_without_data_dir_is_noop(tmp_path):
    assert EventLog(tmp_path / "missing" / "logs.json").recover() == 0


def test_cancelled_append_still_finishes_before_next_writer(tmp_path, monkeypatch):
    log = EventLog(tmp_path / "logs.json")
    real_persist = log._persist

    def slow_persist(records):
        if records and records[-1].status == "first":
            time.sleep(0.2)
        real_persist(records)

    monkeypatch.setattr(log, "_persist", slow_persist)

    async def scenario():
        first = asyncio.create_task(log.append(make_record(status="first")))
        await asyncio.sleep(0.05)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        total = await log.append(make_record(status="second"))
        return total, await log.read_all()

    total, records = asyncio.run(scenario())

    assert total == 2
    assert [r.status for r in records] == ["first", "second"]


@pytest.mark.skipif(not hasattr(os, "O_DIRECTORY"), reason="directory fsync is POSIX only")
def test_append_fsyncs_the_log_directory(tmp_path, monkeypatch):
    log = EventLog(tmp_path / "logs.json")
    real_fsync = os.fsync
    synced_dirs = []

    def recording_fsync(fd):
        if stat.S_ISDIR(os.fstat(fd).st_mode):
            synced_dirs.append(fd)
        real_fsync(fd)

    monkeypatch.setattr(event_log_module.os, "fsync", recording_fsync)

    asyncio.run(log.append(make_record()))

    assert len(synced_dirs) == 1
