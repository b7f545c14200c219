import json

from conftest import FakeClient, make_run
from lbcheck import CategoryVariables
from srcapi import Run
from wrledger import (
    WrEntry,
    WrLedger,
    build_entry,
    enrich_players,
    load_last_seen,
    save_last_seen,
)


def entry(run_id, epoch, **kw):
    return WrEntry(run_id=run_id, verified_epoch=epoch, **kw)


def test_insert_is_idempotent():
    ledger = WrLedger()
    assert ledger.insert(entry("a", 10, game="first"))
    assert not ledger.insert(entry("a", 99, game="second"))
    assert len(ledger) == 1
    assert ledger.entries[0].game == "first"
    assert ledger.has("a") and not ledger.has("b")


def test_prune_removes_only_entries_before_cutoff():
    ledger = WrLedger([entry("a", 5), entry("b", 10), entry("c", 15)])
    assert ledger.prune(10) == 1
    assert [e.run_id for e in ledger] == ["b", "c"]
    assert not ledger.has("a")
    assert all(e.verified_epoch >= 10 for e in ledger)


def test_sorted_newest_first_is_stable():
    ledger = WrLedger([entry("a", 10), entry("b", 30), entry("c", 10), entry("d", 30), entry("e", 20)])
    assert [e.run_id for e in ledger.sorted_newest_first()] == ["b", "d", "e", "a", "c"]
    # the ledger itself keeps insertion order until sorted in place
    assert [e.run_id for e in ledger] == ["a", "b", "c", "d", "e"]
    ledger.sort_newest_first()
    assert [e.run_id for e in ledger] == ["b", "d", "e", "a", "c"]


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "wrs.json"
    ledger = WrLedger([
        entry("a", 10, primary_t=None, players="x"),
        entry("b", 20, primary_t=61.5, players_data=[{"name": "n", "weblink": "w", "image": "i"}]),
    ])
    ledger.save(path)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[0]["primary_t"] == -1
    assert "players_data" not in raw[0]
    assert raw[1]["players_data"] == [{"name": "n", "weblink": "w", "image": "i"}]

    loaded = WrLedger.load(path)
    assert [e.to_dict() for e in loaded] == [e.to_dict() for e in ledger]
    assert loaded.entries[0].primary_t is None


def test_load_tolerates_bad_files(tmp_path):
    assert len(WrLedger.load(tmp_path / "missing.json")) == 0

    path = tmp_path / "wrs.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(WrLedger.load(path)) == 0

    path.write_text(json.dumps([1, {"game": "no id"}, {"run_id": "a", "verified_epoch": 3},
                                {"run_id": "a", "verified_epoch": 4}]), encoding="utf-8")
    loaded = WrLedger.load(path)
    assert [(e.run_id, e.verified_epoch) for e in loaded] == [("a", 3)]


def test_last_seen_state(tmp_path):
    path = tmp_path / "state.json"
    assert load_last_seen(path) == 0
    save_last_seen(path, 1234)
    assert json.loads(path.read_text(encoding="utf-8")) == {"last_seen_epoch": 1234}
    assert load_last_seen(path) == 1234
    path.write_text('{"last_seen_epoch": -5}', encoding="utf-8")
    assert load_last_seen(path) == 0


def test_build_entry_uses_display_names():
    client = FakeClient(variables={"c1": [{"id": "v", "name": "Version",
                                          "values": {"values": {"x": {"label": "1.0"}}}}]})
    run = Run.from_json(make_run("r", verified=50, t=75.0, level="l1", values={"v": "x"}))
    e = build_entry(run, 50, "1970-01-01T00:00:50Z", CategoryVariables(client))
    assert e.run_id == "r"
    assert e.game == "Game g1"
    assert e.category == "Category c1"
    assert e.level == "Level l1"
    assert e.subcats == "Version: 1.0"
    assert e.players == "Runner"
    assert e.players_data[0]["image"].endswith("/image.png?v=2")
    assert e.game_cover.startswith("https://")


def test_build_entry_falls_back_to_ids_and_requires_them():
    run = Run.from_json(make_run("r", verified=50, embed=False, level="l9"))
    e = build_entry(run, 50, "")
    assert (e.game, e.category, e.level) == ("g1", "c1", "l9")

    run.category_id = None
    assert build_entry(run, 50, "") is None


def test_enrich_players_fills_only_recent_missing_records():
    client = FakeClient(details={"new": make_run("new", verified=100), "old": make_run("old", verified=5)})
    ledger = WrLedger([entry("new", 100), entry("old", 5), entry("done", 100, players_data=[])])
    assert enrich_players(ledger, client, cutoff=50) == 1
    assert ledger.entries[0].players_data[0]["name"] == "Runner"
    assert ledger.entries[1].players_data is None
    assert client.count("run", "new", True) == 1
    assert client.count("run", "old") == 0
    assert client.count("run", "done") == 0


def test_last_seen_ignores_corrupt_state(tmp_path):
    path = tmp_path / "state.json"
    for text in ("{not json", "[]", '{"last_seen_epoch": "12"}', '{"last_seen_epoch": NaN}',
                 '{"last_seen_epoch": Infinity}', '{"last_seen_epoch": 1e999}',
                 '{"last_seen_epoch": 1%s}' % ("0" * 400)):
        path.write_text(text, encoding="utf-8")
        assert load_last_seen(path) == 0, text


def test_load_treats_non_finite_epochs_as_expired(tmp_path):
    path = tmp_path / "wrs.json"
    path.write_text('[{"run_id": "a", "verified_epoch": NaN, "primary_t": Infinity},'
                    ' {"run_id": "b", "verified_epoch": 1e999}, {"run_id": "c", "verified_epoch": 50}]',
                    encoding="utf-8")
    ledger = WrLedger.load(path)
    assert [(e.run_id, e.verified_epoch) for e in ledger] == [("a", 0), ("b", 0), ("c", 50)]
    assert ledger.entries[0].primary_t is None
    ledger.prune(10)
    assert [e.run_id for e in ledger] == ["c"]
