"""Tests for vocab_gateway/credentials/pool.py — CredentialPool."""

import json

import pytest

from conftest import KEY_A, KEY_B, KEY_C, make_settings
from vocab_gateway.credentials.pool import CredentialPool
from vocab_gateway.credentials.store import MemoryCredentialStore
from vocab_gateway.errors import InvalidCredential, NotFound


def ids(pool: CredentialPool) -> list[str]:
    return [item["id"] for item in pool.list_masked()["items"]]


class TestLoad:

    async def test_empty_store_without_seed(self, pool, memory_store):
        assert len(pool) == 0
        assert pool.active_id is None
        assert pool.status() == {"hasKey": False}
        assert memory_store.document is None

    async def test_loads_stored_document(self, pool_document):
        pool = CredentialPool(MemoryCredentialStore(pool_document), make_settings())
        await pool.load()
        assert ids(pool) == ["key-1", "key-2"]
        assert pool.active_id == "key-2"
        assert pool.concurrency == 6

    async def test_stored_concurrency_is_clamped(self, pool_document):
        pool_document["concurrency"] = 99
        pool = CredentialPool(MemoryCredentialStore(pool_document), make_settings())
        await pool.load()
        assert pool.concurrency == 16

    async def test_seeds_from_settings_on_first_run(self):
        store = MemoryCredentialStore()
        pool = CredentialPool(store, make_settings(ai_api_key=KEY_A))
        await pool.load()

        assert len(pool) == 1
        assert pool.active().secret == KEY_A
        assert pool.active().name == "Default"
        assert store.document["items"][0]["key"] == KEY_A

    async def test_seed_ignored_when_document_exists(self, pool_document):
        pool = CredentialPool(MemoryCredentialStore(pool_document), make_settings(ai_api_key=KEY_C))
        await pool.load()
        assert ids(pool) == ["key-1", "key-2"]

    async def test_invalid_seed_is_ignored(self):
        pool = CredentialPool(MemoryCredentialStore(), make_settings(ai_api_key="bad key"))
        await pool.load()
        assert len(pool) == 0


class TestAdd:

    async def test_first_key_becomes_active(self, pool):
        cid = await pool.add("Personal", KEY_A)
        assert pool.active_id == cid
        assert pool.status() == {"hasKey": True}

    async def test_later_keys_do_not_change_active(self, pool):
        first = await pool.add("A", KEY_A)
        await pool.add("B", KEY_B)
        assert pool.active_id == first

    async def test_blank_name_gets_default(self, pool):
        cid = await pool.add("  ", KEY_A)
        assert pool.get(cid).name == "API Key"

    async def test_invalid_secret_leaves_pool_unchanged(self, pool, memory_store):
        with pytest.raises(InvalidCredential):
            await pool.add("bad", "")
        assert len(pool) == 0
        assert memory_store.document is None

    async def test_persists(self, pool, memory_store):
        cid = await pool.add("A", KEY_A)
        assert memory_store.document["activeId"] == cid
        assert memory_store.document["items"][0]["key"] == KEY_A


class TestDelete:

    async def test_delete_inactive_keeps_active(self, pool_abc):
        a, b, c = ids(pool_abc)
        await pool_abc.delete(c)
        assert ids(pool_abc) == [a, b]
        assert pool_abc.active_id == a

    async def test_delete_active_selects_previous(self, pool_abc):
        a, b, c = ids(pool_abc)
        await pool_abc.set_active(c)
        await pool_abc.delete(c)
        assert pool_abc.active_id == b

    async def test_delete_first_active_selects_new_first(self, pool_abc):
        a, b, c = ids(pool_abc)
        await pool_abc.delete(a)
        assert pool_abc.active_id == b

    async def test_delete_last_clears_active(self, pool):
        cid = await pool.add("A", KEY_A)
        await pool.delete(cid)
        assert pool.active_id is None
        assert pool.candidates(pooled=False) == []

    async def test_delete_unknown(self, pool_abc):
        with pytest.raises(NotFound):
            await pool_abc.delete("missing")
        assert len(pool_abc) == 3


class TestActiveAndRename:

    async def test_set_active(self, pool_abc):
        b = ids(pool_abc)[1]
        await pool_abc.set_active(b)
        assert pool_abc.active_id == b
        assert pool_abc.list_masked()["activeId"] == b

    async def test_set_active_unknown(self, pool_abc):
        before = pool_abc.active_id
        with pytest.raises(NotFound):
            await pool_abc.set_active("missing")
        assert pool_abc.active_id == before

    async def test_rename(self, pool_abc, memory_store):
        a = ids(pool_abc)[0]
        await pool_abc.rename(a, "  Personal  ")
        assert pool_abc.get(a).name == "Personal"
        assert memory_store.document["items"][0]["name"] == "Personal"

    async def test_rename_blank_uses_default(self, pool_abc):
        a = ids(pool_abc)[0]
        await pool_abc.rename(a, "")
        assert pool_abc.get(a).name == "API Key"


class TestCandidates:

    async def test_pooled_returns_all_in_order(self, pool_abc):
        assert [c.secret for c in pool_abc.candidates(pooled=True)] == [KEY_A, KEY_B, KEY_C]

    async def test_single_returns_active(self, pool_abc):
        await pool_abc.set_active(ids(pool_abc)[2])
        assert [c.secret for c in pool_abc.candidates(pooled=False)] == [KEY_C]


    async def test_pooled_skips_cooling_keys(self, pool_abc):
        a, b, c = ids(pool_abc)
        pool_abc.record_failure(b, "quota", retry_after=60)
        assert [k.id for k in pool_abc.candidates(pooled=True)] == [a, c]

    async def test_single_ignores_cooldown(self, pool_abc):
        a = ids(pool_abc)[0]
        pool_abc.record_failure(a, "quota", retry_after=60)
        assert [k.id for k in pool_abc.candidates(pooled=False)] == [a]

    async def test_single_without_active_is_empty(self, pool_abc):
        await pool_abc.clear_active()
        assert pool_abc.candidates(pooled=False) == []

    async def test_next_available_in(self, pool_abc):
        for cid, wait in zip(ids(pool_abc), (40, 20, 90)):
            pool_abc.record_failure(cid, "quota", retry_after=wait)
        assert pool_abc.candidates(pooled=True) == []
        assert 0 < pool_abc.next_available_in() <= 20


class TestHealth:

    async def test_contains(self, pool_abc):
        assert ids(pool_abc)[0] in pool_abc
        assert "missing" not in pool_abc

    async def test_list_health_has_no_secrets(self, pool_abc):
        a = ids(pool_abc)[0]
        pool_abc.record_success(a, 120.0)
        items = pool_abc.list_health()["items"]

        assert [i["name"] for i in items] == ["A", "B", "C"]
        assert items[0]["totalRequests"] == 1
        assert items[0]["avgResponseMs"] == 120.0
        dumped = json.dumps(items)
        for key in (KEY_A, KEY_B, KEY_C):
            assert key not in dumped

    async def test_reset_errors(self, pool_abc):
        a = ids(pool_abc)[0]
        pool_abc.record_failure(a, "quota", retry_after=60)
        pool_abc.reset_errors(a)
        assert [k.id for k in pool_abc.candidates(pooled=True)][0] == a
        assert pool_abc.list_health()["items"][0]["consecutiveErrors"] == 0

    async def test_reset_errors_unknown(self, pool_abc):
        with pytest.raises(NotFound):
            pool_abc.reset_errors("missing")

    async def test_outcomes_for_unknown_ids_are_ignored(self, pool_abc):
        pool_abc.record_success("gone", 10.0)
        assert pool_abc.record_failure("gone", "quota", retry_after=60) == 0.0
        assert pool_abc.health.to_public("gone")["totalRequests"] == 0

    async def test_delete_forgets_health(self, pool_abc):
        b = ids(pool_abc)[1]
        pool_abc.record_failure(b, "quota", retry_after=60)
        await pool_abc.delete(b)
        assert pool_abc.health.to_public(b)["totalErrors"] == 0


class TestClearActive:

    async def test_keeps_keys_and_persists(self, pool_abc, memory_store):
        await pool_abc.clear_active()

        assert pool_abc.active_id is None
        assert pool_abc.active() is None
        assert len(pool_abc) == 3
        assert memory_store.document["activeId"] is None
        assert pool_abc.status() == {"hasKey": True}

    async def test_survives_reload(self, pool_abc, memory_store):
        await pool_abc.clear_active()
        reloaded = CredentialPool(memory_store, make_settings())
        await reloaded.load()
        assert reloaded.active_id is None
        assert len(reloaded) == 3

    async def test_set_active_after_clear(self, pool_abc):
        await pool_abc.clear_active()
        b = ids(pool_abc)[1]
        await pool_abc.set_active(b)
        assert pool_abc.active().secret == KEY_B


class TestListMasked:

    async def test_no_secret_exposed(self, pool_abc):
        dumped = json.dumps(pool_abc.list_masked(), ensure_ascii=False)
        for key in (KEY_A, KEY_B, KEY_C):
            assert key not in dumped
        assert pool_abc.list_masked()["items"][0]["masked"] == "AIza…0001"


class TestConcurrency:

    async def test_default(self, pool):
        assert pool.concurrency == 4

    async def test_set_and_persist(self, pool_abc, memory_store):
        assert await pool_abc.set_concurrency(8) == 8
        assert memory_store.document["concurrency"] == 8

    async def test_clamped_to_max(self, pool):
        assert await pool.set_concurrency(100) == 16

    async def test_survives_reload(self, pool_abc, memory_store):
        await pool_abc.set_concurrency(2)
        reloaded = CredentialPool(memory_store, make_settings())
        await reloaded.load()
        assert reloaded.concurrency == 2
        assert ids(reloaded) == ids(pool_abc)
