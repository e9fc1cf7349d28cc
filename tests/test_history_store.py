import json

from dermascan.models.schemas import HistoryEntry
from dermascan.services.history_store import HistoryStore, prepend

from conftest import make_diagnosis


def entry(n: int) -> HistoryEntry:
    diagnosis = make_diagnosis(condition=f"Condition {n}")
    return HistoryEntry(id=str(n), date="10/19/2026", condition=diagnosis.condition, image=f"img-{n}", result=diagnosis)


def test_missing_file_is_empty_history(tmp_path):
    assert HistoryStore(tmp_path / "nothing.json").load() == []


def test_round_trip_preserves_values_and_order(history_store):
    entries = [entry(3), entry(2), entry(1)]
    history_store.save(entries)
    assert history_store.load() == entries


def test_saved_file_uses_the_named_slot_and_wire_names(history_store):
    history_store.save([entry(1)])
    data = json.loads(history_store.path.read_text())
    stored = data["derma_history"][0]
    assert stored["result"]["suggestedIngredients"] == ["Salicylic acid", "Niacinamide"]
    assert stored["result"]["detections"][0]["box_2d"] == [100, 200, 300, 500]


def test_other_slots_are_preserved(history_store):
    history_store.path.write_text(json.dumps({"theme": "dark"}))
    history_store.save([entry(1)])
    data = json.loads(history_store.path.read_text())
    assert data["theme"] == "dark"
    assert len(data["derma_history"]) == 1


def test_corrupt_storage_is_empty_history(history_store):
    history_store.path.write_text("{not json")
    assert history_store.load() == []

    history_store.path.write_text(json.dumps({"derma_history": "oops"}))
    assert history_store.load() == []

    history_store.path.write_text(json.dumps({"derma_history": [{"id": "1"}]}))
    assert history_store.load() == []


def test_save_over_corrupt_file_recovers(history_store):
    history_store.path.write_text("[1, 2")
    history_store.save([entry(1)])
    assert history_store.load() == [entry(1)]


def test_save_failure_is_not_raised(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory")
    store = HistoryStore(blocker / "local_storage.json")
    store.save([entry(1)])
    assert store.load() == []


def test_prepend_caps_at_limit_newest_first():
    history = []
    for n in range(1, 8):
        previous = history
        history = prepend(history, entry(n), limit=5)
        assert len(history) == min(len(previous) + 1, 5)
        assert history[0].id == str(n)
        assert history[1:] == previous[:4]
    assert [e.id for e in history] == ["7", "6", "5", "4", "3"]
