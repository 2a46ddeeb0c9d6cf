"""Saved-items synchronizer: optimistic toggles, reconciliation and the pending journal."""

import json

import pytest

from engine.errors import AuthenticationRequired
from engine.saved import MIRROR_KEY, PENDING_KEY, SavedItemsSynchronizer

from conftest import FakeAccount, make_product


@pytest.fixture
def sync(store, account):
    return SavedItemsSynchronizer(store, account)


def _local_ids(sync):
    return [it.product_id for it in sync.local_items()]


class TestToggleSave:

    def test_toggle_then_list_round_trip(self, sync, account):
        """Save shows up in list(); a second toggle removes it everywhere."""
        p = make_product("P1", "Kettle")

        state = sync.toggle_save(p)
        assert state.saved is True
        assert state.synced is True
        assert [it.product_id for it in sync.list()] == ["P1"]

        state = sync.toggle_save(p)
        assert state.saved is False
        assert sync.list() == []
        assert account.remote == {}

    def test_saved_entry_keeps_product_fields(self, sync):
        """Products read back from the remote keep title, price and store."""
        sync.toggle_save(make_product("P2", "Toaster", store="Walmart", price="$19.99"))
        [item] = sync.list()
        assert item.product.title == "Toaster"
        assert item.product.price == "$19.99"
        assert item.product.store == "Walmart"

    def test_local_mirror_written_with_saved_at(self, sync, store):
        """The mirror is persisted under savedProducts with a timestamp."""
        sync.toggle_save(make_product("P3"))
        data = json.loads(store.get(MIRROR_KEY))
        assert data[0]["productId"] == "P3"
        assert data[0]["savedAt"]

    def test_remote_failure_still_saves_locally(self, sync, account, store):
        """With the remote down, the toggle reports saved and the mirror has it."""
        account.failing = True
        p = make_product("P4")

        state = sync.toggle_save(p)

        assert state.saved is True
        assert state.synced is False
        assert sync.is_saved("P4")
        assert _local_ids(sync) == ["P4"]
        assert "P4" not in account.remote
        assert [c.product_id for c in sync.pending()] == ["P4"]
        assert store.get(PENDING_KEY) is not None

    def test_list_falls_back_to_mirror_when_remote_down(self, sync, account):
        """list() returns the unchanged mirror if the remote cannot be reached."""
        account.failing = True
        sync.toggle_save(make_product("P5"))
        assert [it.product_id for it in sync.list()] == ["P5"]

    def test_membership_is_decided_by_local_mirror(self, sync, account):
        """Toggle checks the mirror only; it does not read the remote list."""
        sync.toggle_save(make_product("P6"))
        assert "get_saved" not in account.calls

    def test_logged_out_toggle_is_local_only(self, store):
        """Without a token the toggle stays local and reports unauthenticated."""
        account = FakeAccount(logged_in=False)
        sync = SavedItemsSynchronizer(store, account)

        state = sync.toggle_save(make_product("P7"))

        assert state.saved is True
        assert state.authenticated is False
        assert state.synced is False
        assert account.calls == []
        assert _local_ids(sync) == ["P7"]

    def test_successful_toggle_clears_pending_entry(self, sync, account):
        """A later synced toggle of the same id drops its journal entry."""
        account.failing = True
        p = make_product("P8")
        sync.toggle_save(p)
        account.failing = False

        sync.toggle_save(p)

        assert sync.pending() == []


class TestReconciliation:

    def test_remote_list_overwrites_mirror(self, sync, account):
        """A reachable remote replaces the mirror, dropping offline additions."""
        account.failing = True
        sync.toggle_save(make_product("OFF1"))
        account.failing = False
        account.remote["R1"] = make_product("R1")

        items = sync.list()

        assert [it.product_id for it in items] == ["R1"]
        assert _local_ids(sync) == ["R1"]
        # The divergence stays visible
        assert [c.product_id for c in sync.pending()] == ["OFF1"]

    def test_list_drops_pending_entries_the_remote_agrees_with(self, sync, account):
        """Journal entries already reflected remotely are removed on list()."""
        account.failing = True
        sync.toggle_save(make_product("AG1"))
        account.failing = False
        account.remote["AG1"] = make_product("AG1")

        sync.list()

        assert sync.pending() == []

    def test_retry_pending_replays_save(self, sync, account):
        """An explicit retry pushes the offline save and empties the journal."""
        account.failing = True
        sync.toggle_save(make_product("RT1", "Retry Me"))
        account.failing = False

        remaining = sync.retry_pending()

        assert remaining == []
        assert account.remote["RT1"].title == "Retry Me"
        assert [it.product_id for it in sync.list()] == ["RT1"]

    def test_retry_pending_keeps_failures(self, sync, account):
        """Replays that fail again stay in the journal."""
        account.failing = True
        sync.toggle_save(make_product("RT2"))

        remaining = sync.retry_pending()

        assert [c.product_id for c in remaining] == ["RT2"]
        assert [c.product_id for c in sync.pending()] == ["RT2"]

    def test_retry_pending_logout_midway_keeps_only_unreplayed(self, sync, account, monkeypatch):
        """A login loss during replay keeps the failed and untried entries, not the confirmed ones."""
        account.failing = True
        sync.toggle_save(make_product("A"))
        sync.toggle_save(make_product("B"))
        sync.toggle_save(make_product("C"))
        account.failing = False

        real_save = account.save_product

        def save_then_expire(product):
            if product.id != "A":
                raise AuthenticationRequired("token expired")
            real_save(product)

        monkeypatch.setattr(account, "save_product", save_then_expire)
        remaining = sync.retry_pending()

        assert list(account.remote) == ["A"]
        assert [c.product_id for c in remaining] == ["B", "C"]
        assert [c.product_id for c in sync.pending()] == ["B", "C"]

    def test_retry_pending_with_nothing_pending(self, sync, account):
        """Nothing pending means no remote calls."""
        assert sync.retry_pending() == []
        assert account.calls == []

    def test_duplicate_remote_records_collapse(self, sync, account, monkeypatch):
        """At most one saved entry per product id survives reconciliation."""
        p = make_product("D1")
        account.remote["D1"] = p
        original = account.get_saved_products
        monkeypatch.setattr(account, "get_saved_products", lambda: original() * 2)

        assert [it.product_id for it in sync.list()] == ["D1"]

    def test_corrupt_mirror_reads_as_empty(self, sync, store, account):
        """Unreadable mirror JSON is treated as no saved items."""
        account.failing = True
        store.set(MIRROR_KEY, "[oops")
        assert sync.list() == []


class TestClearAll:

    def test_clear_all_synced(self, sync, account):
        """Clearing empties both stores and reports synced."""
        sync.toggle_save(make_product("C1"))
        sync.toggle_save(make_product("C2"))

        assert sync.clear_all() is True
        assert sync.local_items() == []
        assert account.remote == {}

    def test_clear_all_remote_failure_clears_locally(self, sync, account):
        """A failed remote clear still empties the mirror and journals unsaves."""
        sync.toggle_save(make_product("C3"))
        account.failing = True

        assert sync.clear_all() is False
        assert sync.local_items() == []
        assert [(c.product_id, c.op) for c in sync.pending()] == [("C3", "unsave")]

    def test_failed_clear_drops_unconfirmed_saves(self, sync, account):
        """A cleared item saved offline is not resurrected by a later replay."""
        account.failing = True
        sync.toggle_save(make_product("OFF1"))
        account.failing = False
        sync.list()
        sync.toggle_save(make_product("K1"))
        account.failing = True

        assert sync.clear_all() is False
        assert [(c.product_id, c.op) for c in sync.pending()] == [("K1", "unsave")]

        account.failing = False
        assert sync.retry_pending() == []
        assert account.remote == {}
        assert sync.list() == []

    def test_clear_all_requires_login(self, store):
        """Logged out, clear_all raises and leaves the mirror alone."""
        account = FakeAccount(logged_in=False)
        sync = SavedItemsSynchronizer(store, account)
        sync.toggle_save(make_product("C4"))

        with pytest.raises(AuthenticationRequired):
            sync.clear_all()
        assert _local_ids(sync) == ["C4"]
        assert account.calls == []
