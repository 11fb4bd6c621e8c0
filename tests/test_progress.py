import json

from progress import JsonProgressStore, MemoryProgressStore, ProgressRecord, parse_timestamp


def test_record_resume_position():
    assert ProgressRecord.watching(42.5).resume_position == 42.5
    assert ProgressRecord(seen=True, position=42.5).resume_position == 0.0
    assert ProgressRecord.finished().position == 0.0


def test_finished_with_error_sets_flag():
    record = ProgressRecord.finished(error=True)
    assert record.seen and record.error
    assert ProgressRecord.finished().error is None
    assert "error" not in ProgressRecord.finished().to_dict()


def test_json_store_missing_file(tmp_path):
    store = JsonProgressStore(tmp_path / "progress.json")
    assert store.get() == {}


def test_json_store_corrupt_file(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonProgressStore(path).get() == {}


def test_json_store_set_get_roundtrip_is_noop(tmp_path):
    path = tmp_path / "progress.json"
    store = JsonProgressStore(path)
    store.set({
        "a": ProgressRecord(seen=False, position=12.0, updated_at=1000),
        "b": ProgressRecord(seen=True, position=0.0, error=True, updated_at=2000),
    })
    before = path.read_text(encoding="utf-8")
    records = store.get()

    store.set(store.get())

    assert store.get() == records
    assert path.read_text(encoding="utf-8") == before


def test_json_store_reads_legacy_progress_key(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({
        "a": {"seen": False, "progress": 33.3, "updatedAt": 1700000000000},
        "b": {"seen": True, "progress": 0, "error": True, "updatedAt": 1700000000001},
        "junk": "not a record",
    }), encoding="utf-8")

    records = JsonProgressStore(path).get()

    assert records["a"].position == 33.3
    assert records["b"].seen and records["b"].error
    assert "junk" not in records


def test_update_replaces_whole_record(tmp_path):
    store = JsonProgressStore(tmp_path / "progress.json")
    store.update("a", ProgressRecord.finished(error=True))
    store.update("a", ProgressRecord.watching(5.0))
    store.update("b", ProgressRecord.watching(7.0))

    records = store.get()
    assert records["a"].seen is False
    assert records["a"].error is None
    assert records["a"].position == 5.0
    assert records["b"].position == 7.0


def test_stale_entries_are_kept(tmp_path):
    path = tmp_path / "progress.json"
    store = JsonProgressStore(path)
    store.update("removed-from-catalog", ProgressRecord.finished())
    store.update("a", ProgressRecord.watching(1.0))
    assert set(json.loads(path.read_text(encoding="utf-8"))) == {"removed-from-catalog", "a"}


def test_memory_store_counts_writes():
    store = MemoryProgressStore()
    store.update("a", ProgressRecord.watching(1.0))
    store.set(store.get())
    assert store.writes == 2
    assert store.get()["a"].position == 1.0


def test_iso_updated_at_is_accepted(tmp_path):
    path = tmp_path / "progress.json"
    path.write_text(json.dumps({
        "a": {"seen": True, "updatedAt": "2024-05-01T10:00:00Z"},
        "b": {"seen": False, "position": 8, "updatedAt": "yesterday"},
        "c": {"seen": False, "position": 3, "updatedAt": "1700000000000"},
    }), encoding="utf-8")

    records = JsonProgressStore(path).get()

    assert records["a"].seen
    assert records["a"].updated_at == 1714557600000
    assert records["b"].position == 8.0
    assert records["b"].updated_at == 0
    assert records["c"].updated_at == 1700000000000


def test_parse_timestamp():
    assert parse_timestamp(1700000000000) == 1700000000000
    assert parse_timestamp(None) == 0
    assert parse_timestamp({"not": "a time"}) == 0
    assert parse_timestamp("2024-05-01T10:00:00") == 1714557600000


def test_json_store_undecodable_file(tmp_path):
    path = tmp_path / "progress.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    store = JsonProgressStore(path)

    assert store.get() == {}

    store.update("a", ProgressRecord.watching(4.0))
    assert store.get()["a"].position == 4.0
