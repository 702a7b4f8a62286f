import json

import pytest

from datingbot.models import Document, Match, Report, User, Viewer
from datingbot.store import DocumentStore, open_store

from conftest import NOW, MemoryKV


def sample_document() -> Document:
    alice = User(id="1", name="Alice", age=30, gender="female", city="Lyon", interests=["art"], completed=True)
    bob = User(id="2", name="Bob", age=31, gender="male", city="Lyon", coins=40, likes=["1"], matches=["1"])
    alice.viewers = [Viewer(viewer_id="2", timestamp=NOW.isoformat())]
    match = Match.create("2", "1", NOW)
    report = Report.create("1", "2", "rude", NOW)
    return Document(
        users={"1": alice, "2": bob},
        matches={match.id: match},
        reports=[report],
        sub_admins=["2"],
    )


def test_document_round_trip():
    doc = sample_document()
    restored = Document.from_dict(json.loads(json.dumps(doc.to_dict())))
    assert restored.to_dict() == doc.to_dict()
    assert restored.users["1"].viewers[0].viewer_id == "2"


def test_persisted_layout_uses_expected_keys():
    data = sample_document().to_dict()
    assert set(data) == {"users", "matches", "reports", "subAdmins"}
    assert "extraInfo" in data["users"]["1"]
    assert "boostUntil" in data["users"]["1"]


def test_missing_viewers_are_backfilled():
    doc = Document.from_dict({"users": {"7": {"name": "Old", "coins": 10}}})
    assert doc.users["7"].viewers == []
    assert doc.users["7"].likes == []
    assert doc.matches == {}
    assert doc.reports == []


def test_map_key_wins_over_stored_id():
    doc = Document.from_dict({"users": {"7": {"id": "99", "name": "Old"}}})
    assert doc.users["7"].id == "7"


def test_negative_balance_is_clamped():
    assert User.from_dict({"id": "1", "coins": -5}).coins == 0


def test_match_users_are_an_unordered_pair():
    doc = sample_document()
    assert doc.find_match("1", "2") is doc.find_match("2", "1")
    assert doc.find_match("1", "3") is None


async def test_first_load_creates_empty_document():
    kv = MemoryKV()
    store = DocumentStore(kv)
    doc = await store.load()
    assert doc.users == {} and not doc.degraded
    assert json.loads(kv.data["data"]) == {"users": {}, "matches": {}, "reports": [], "subAdmins": []}


async def test_save_then_load(store):
    doc = sample_document()
    assert await store.save(doc)
    loaded = await store.load()
    assert loaded.to_dict() == doc.to_dict()
    assert loaded.users["2"].coins == 40
    assert loaded.sub_admins == ["2"]


async def test_corrupt_store_is_degraded_and_never_overwritten(kv, store):
    kv.data["data"] = "{not json"
    doc = await store.load()
    assert doc.degraded
    assert not await store.save(doc)
    assert kv.data["data"] == "{not json"


async def test_transaction_saves_on_success(store):
    async with store.transaction("1") as doc:
        doc.users["1"] = User(id="1", name="Alice")
    assert (await store.get_user("1")).name == "Alice"


async def test_transaction_discards_changes_when_body_raises(store):
    async with store.transaction("1") as doc:
        doc.users["1"] = User(id="1", coins=100)

    with pytest.raises(RuntimeError):
        async with store.transaction("1") as doc:
            doc.users["1"].coins = 0
            raise RuntimeError("boom")

    assert (await store.get_user("1")).coins == 100


async def test_kvsqlite_backed_store(tmp_path):
    path = str(tmp_path / "data" / "bot.db")
    store = open_store(path)
    async with store.transaction("5") as doc:
        doc.users["5"] = User(id="5", name="Persisted", coins=77)

    reopened = open_store(path)
    user = await reopened.get_user("5")
    assert user.name == "Persisted"
    assert user.coins == 77
