"""
Unit tests for the export pipeline.

Tests cover:
- Writing found records and skipping absent ones
- Resuming and idempotent re-runs
- Per-key error isolation and the error log
- Malformed archives failing only themselves
- Progress reporting
"""

import asyncio
import time

import orjson
import pytest

from bigdbexport.core.export.errorlog import ErrorLog
from bigdbexport.core.export.pipeline import ArchiveStatus, ExportPipeline
from bigdbexport.core.export.progress import ProgressSink, ProgressState
from bigdbexport.core.export.store import RecordStore
from bigdbexport.core.remote.base import RemoteError, TransientFetchError
from tests.fakes import FakeSession


class RecordingSink(ProgressSink):
    def __init__(self):
        self.events: list[tuple[str, str, int, int]] = []

    def started(self, state: ProgressState) -> None:
        self.events.append(("started", state.label, state.processed, state.total))

    def advanced(self, state: ProgressState) -> None:
        self.events.append(("advanced", state.label, state.processed, state.total))

    def finished(self, state: ProgressState) -> None:
        self.events.append(("finished", state.label, state.processed, state.total))


def output_dir(export_config, table="players", game="game1", database="db1"):
    return export_config.output_dir / game / table / database


class TestExportArchive:
    @pytest.mark.asyncio
    async def test_found_record_written_absent_record_skipped(self, make_archive, export_config):
        archive = make_archive(keys=("alice", "bob"))
        session = FakeSession(records={("players", "alice"): {"level": 3}})
        sink = RecordingSink()
        pipeline = ExportPipeline(session, export_config, progress=sink)

        [outcome] = await pipeline.run([archive])

        out = output_dir(export_config)
        assert orjson.loads((out / "alice.tson").read_bytes()) == {"level": 3}
        assert not (out / "bob.tson").exists()
        assert not export_config.error_log.exists()
        assert outcome.status is ArchiveStatus.COMPLETED
        assert (outcome.exported, outcome.not_found, outcome.failed) == (1, 1, 0)
        assert sink.events[-1] == ("finished", "players", 2, 2)

    @pytest.mark.asyncio
    async def test_record_not_found_error_is_not_a_failure(self, make_archive, export_config):
        archive = make_archive(keys=("ghost",))
        session = FakeSession(missing_raises=True)

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert outcome.not_found == 1
        assert outcome.failed == 0
        assert not export_config.error_log.exists()

    @pytest.mark.asyncio
    async def test_keys_loaded_in_scan_order(self, make_archive, export_config):
        keys = ("k3", "k1", "k2")
        archive = make_archive(keys=keys)
        session = FakeSession(records={("players", k): {"k": k} for k in keys})

        await ExportPipeline(session, export_config).run([archive])

        assert session.calls == [("players", k) for k in keys]

    @pytest.mark.asyncio
    async def test_empty_archive_completes(self, make_archive, export_config):
        archive = make_archive(payload=b"{}")
        sink = RecordingSink()

        [outcome] = await ExportPipeline(FakeSession(), export_config, progress=sink).run([archive])

        assert outcome.status is ArchiveStatus.COMPLETED
        assert outcome.total == 0
        assert output_dir(export_config).is_dir()
        assert sink.events == [("started", "players", 0, 0), ("finished", "players", 0, 0)]


class TestResume:
    @pytest.mark.asyncio
    async def test_second_run_loads_nothing(self, make_archive, export_config):
        archive = make_archive(keys=("alice", "bob"))
        records = {("players", "alice"): {"level": 3}, ("players", "bob"): {"level": 1}}

        await ExportPipeline(FakeSession(records=records), export_config).run([archive])
        out = output_dir(export_config)
        before = {p.name: p.read_bytes() for p in out.iterdir()}

        session = FakeSession(records=records)
        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert session.calls == []
        assert outcome.already_present == 2
        assert {p.name: p.read_bytes() for p in out.iterdir()} == before

    @pytest.mark.asyncio
    async def test_partial_output_resumes_remaining_keys(self, make_archive, export_config):
        archive = make_archive(keys=("a", "b", "c"))
        out = output_dir(export_config)
        out.mkdir(parents=True)
        (out / "a.tson").write_text('{"kept": true}')
        session = FakeSession(records={("players", k): {"k": k} for k in "abc"})

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert session.calls == [("players", "b"), ("players", "c")]
        assert (out / "a.tson").read_text() == '{"kept": true}'
        assert outcome.already_present == 1
        assert outcome.exported == 2

    @pytest.mark.asyncio
    async def test_absent_keys_are_asked_again_next_run(self, make_archive, export_config):
        archive = make_archive(keys=("bob",))

        await ExportPipeline(FakeSession(), export_config).run([archive])
        session = FakeSession(records={("players", "bob"): {"level": 9}})
        await ExportPipeline(session, export_config).run([archive])

        assert session.calls == [("players", "bob")]
        assert (output_dir(export_config) / "bob.tson").exists()

    @pytest.mark.asyncio
    async def test_duplicate_keys_fetched_once(self, make_archive, export_config):
        archive = make_archive(keys=("alice", "bob", "alice"))
        session = FakeSession(records={("players", "alice"): {}, ("players", "bob"): {}})

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert session.calls == [("players", "alice"), ("players", "bob")]
        assert outcome.exported == 2
        assert outcome.already_present == 1
        assert outcome.processed == 3


class TestErrorIsolation:
    @pytest.mark.asyncio
    async def test_failing_key_logged_and_skipped(self, make_archive, export_config):
        archive = make_archive(keys=("a", "b", "c"))
        session = FakeSession(
            records={("players", k): {"k": k} for k in "abc"},
            failures={"b": TransientFetchError("server error 503")},
        )

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        out = output_dir(export_config)
        assert (out / "a.tson").exists()
        assert not (out / "b.tson").exists()
        assert (out / "c.tson").exists()
        assert outcome.failed == 1
        assert outcome.status is ArchiveStatus.COMPLETED

        [line] = export_config.error_log.read_text().splitlines()
        assert "players/b" in line
        assert "TransientFetchError: server error 503" in line

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self, make_archive, export_config):
        archive = make_archive(keys=("a", "b"))
        session = FakeSession(
            records={("players", "b"): {}},
            failures={"a": RuntimeError("decoder blew up")},
        )

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert outcome.failed == 1
        assert outcome.exported == 1
        assert "RuntimeError: decoder blew up" in export_config.error_log.read_text()

    @pytest.mark.asyncio
    async def test_unsafe_key_logged(self, make_archive, export_config):
        archive = make_archive(keys=("../escape", "ok"))
        session = FakeSession(records={("players", "../escape"): {}, ("players", "ok"): {}})

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert outcome.failed == 1
        assert outcome.exported == 1
        assert "UnsafeKeyError" in export_config.error_log.read_text()
        assert not (export_config.output_dir / "game1" / "players" / "escape.tson").exists()

    @pytest.mark.asyncio
    async def test_failures_retried_on_next_run(self, make_archive, export_config):
        archive = make_archive(keys=("a",))
        failing = FakeSession(records={("players", "a"): {}}, failures={"a": RemoteError("nope")})
        await ExportPipeline(failing, export_config).run([archive])

        healthy = FakeSession(records={("players", "a"): {}})
        [outcome] = await ExportPipeline(healthy, export_config).run([archive])

        assert healthy.calls == [("players", "a")]
        assert outcome.exported == 1

    @pytest.mark.asyncio
    async def test_shared_error_log_counts_failures(self, make_archive, export_config):
        first = make_archive("game1_players_db1.zip", keys=("a",))
        second = make_archive("game1_items_db1.zip", keys=("b",))
        session = FakeSession(failures={"a": RemoteError("x"), "b": RemoteError("y")})
        error_log = ErrorLog(export_config.error_log)

        await ExportPipeline(session, export_config, error_log=error_log).run([first, second])

        assert error_log.count == 2
        sources = {line.split(" ")[1] for line in export_config.error_log.read_text().splitlines()}
        assert sources == {"players/a", "items/b"}

    @pytest.mark.asyncio
    async def test_one_log_line_per_failure_for_keys_with_whitespace(self, make_archive, export_config):
        archive = make_archive(payload=b'{\r\n\t"a b\r\n\t"def": 1}')
        session = FakeSession(
            failures={
                "a b\r\n\t": TransientFetchError("boom"),
                "def": TransientFetchError("boom"),
            }
        )

        [outcome] = await ExportPipeline(session, export_config).run([archive])

        assert session.calls == [("players", "a b\r\n\t"), ("players", "def")]
        lines = export_config.error_log.read_text().splitlines()
        assert outcome.failed == 2
        assert len(lines) == outcome.failed
        fields = [line.split(" ", 2) for line in lines]
        assert all(len(f) == 3 for f in fields)
        assert [f[1] for f in fields] == ["players/a%20b%0D%0A%09", "players/def"]
        assert all(f[2] == "TransientFetchError: boom" for f in fields)


class TestMultipleArchives:
    @pytest.mark.asyncio
    async def test_malformed_archive_fails_alone(self, make_archive, export_config):
        good = make_archive("game1_players_db1.zip", keys=("alice",))
        bad = good.parent / "game1_items_db1.zip"
        bad.write_bytes(b"not a zip at all")
        session = FakeSession(records={("players", "alice"): {"level": 1}})

        outcomes = await ExportPipeline(session, export_config).run([bad, good])

        assert [o.archive for o in outcomes] == [bad, good]
        assert outcomes[0].status is ArchiveStatus.FAILED
        assert outcomes[0].error
        assert outcomes[1].status is ArchiveStatus.COMPLETED
        assert (output_dir(export_config) / "alice.tson").exists()

    @pytest.mark.asyncio
    async def test_badly_named_archive_fails_alone(self, make_archive, export_config):
        good = make_archive("game1_players_db1.zip", keys=("alice",))
        odd = make_archive("players.zip", keys=("x",))
        session = FakeSession(records={("players", "alice"): {}})

        outcomes = await ExportPipeline(session, export_config).run([odd, good])

        assert outcomes[0].status is ArchiveStatus.FAILED
        assert outcomes[1].exported == 1

    @pytest.mark.asyncio
    async def test_archives_of_different_databases_kept_apart(self, make_archive, export_config):
        first = make_archive("game1_players_db1.zip", keys=("alice",))
        second = make_archive("game1_players_db2.zip", keys=("alice",))
        session = FakeSession(records={("players", "alice"): {"v": 1}})

        await ExportPipeline(session, export_config).run([first, second])

        assert (output_dir(export_config, database="db1") / "alice.tson").exists()
        assert (output_dir(export_config, database="db2") / "alice.tson").exists()

    @pytest.mark.asyncio
    async def test_archives_run_concurrently(self, make_archive, export_config):
        archives = [make_archive(f"game1_t{i}_db1.zip", keys=("k",)) for i in range(3)]
        running = 0
        peak = 0

        class SlowSession(FakeSession):
            async def load(self, table, key):
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.05)
                running -= 1
                return {"table": table}

        await ExportPipeline(SlowSession(), export_config).run(archives)

        assert peak == 3

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self, make_archive, export_config):
        archives = [make_archive(f"game1_t{i}_db1.zip", keys=("k",)) for i in range(5)]
        config = export_config.model_copy(update={"max_concurrent_archives": 2})
        running = 0
        peak = 0

        class SlowSession(FakeSession):
            async def load(self, table, key):
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.05)
                running -= 1
                return {}

        outcomes = await ExportPipeline(SlowSession(), config).run(archives)

        assert peak == 2
        assert all(o.exported == 1 for o in outcomes)

    @pytest.mark.asyncio
    async def test_slow_write_does_not_hold_back_other_archives(self, make_archive, export_config, monkeypatch):
        slow = make_archive("game1_slow_db1.zip", keys=("s",))
        fast = make_archive("game1_fast_db1.zip", keys=("f1", "f2", "f3"))
        events: list[str] = []
        original_write = RecordStore.write

        def write(store, key, record):
            if key == "s":
                time.sleep(0.3)
                events.append("slow write done")
            return original_write(store, key, record)

        class RecordingSession(FakeSession):
            async def load(self, table, key):
                events.append(f"load {key}")
                return {"key": key}

        monkeypatch.setattr(RecordStore, "write", write)

        outcomes = await ExportPipeline(RecordingSession(), export_config).run([slow, fast])

        assert [o.exported for o in outcomes] == [1, 3]
        assert events.index("slow write done") > events.index("load f3")

    @pytest.mark.asyncio
    async def test_unreadable_output_directory_fails_alone(self, make_archive, export_config, monkeypatch):
        broken = make_archive("game1_broken_db1.zip", keys=("x",))
        good = make_archive("game1_players_db1.zip", keys=("alice",))
        original_existing = RecordStore.existing_keys

        def existing_keys(store):
            if "broken" in store.directory.parts:
                raise PermissionError(f"Permission denied: {store.directory}")
            return original_existing(store)

        monkeypatch.setattr(RecordStore, "existing_keys", existing_keys)
        session = FakeSession(records={("players", "alice"): {}})

        outcomes = await ExportPipeline(session, export_config).run([broken, good])

        assert outcomes[0].status is ArchiveStatus.FAILED
        assert "Permission denied" in outcomes[0].error
        assert outcomes[1].status is ArchiveStatus.COMPLETED
        assert session.calls == [("players", "alice")]


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_reaches_total(self, make_archive, export_config):
        keys = tuple(f"k{i}" for i in range(10))
        archive = make_archive(keys=keys)
        session = FakeSession(
            records={("players", k): {} for k in keys[::2]},
            failures={"k3": RemoteError("x")},
        )
        sink = RecordingSink()

        await ExportPipeline(session, export_config, progress=sink).run([archive])

        advanced = [processed for kind, _, processed, _ in sink.events if kind == "advanced"]
        assert advanced == list(range(1, 11))
        assert sink.events[0] == ("started", "players", 0, 10)
        assert sink.events[-1] == ("finished", "players", 10, 10)

    def test_progress_state_description(self):
        state = ProgressState(label="players", total=2)

        assert state.description == "players"
        state.advance("alice")
        assert state.description == "players - alice"
        assert not state.done
        state.advance("bob")
        assert state.done
