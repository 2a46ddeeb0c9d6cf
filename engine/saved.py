# engine/saved.py
"""
Saved-products collection with a local mirror.

The account backend is authoritative when reachable: a successful list()
replaces the mirror wholesale. Toggles always update the mirror, even when
the remote write fails, so the user never sees a failed bookmark. Writes
that did not reach the backend are journaled under PENDING_KEY so the
divergence stays visible and can be replayed with retry_pending().

Known gap: a list() that succeeds before a pending save is replayed drops
that product from the mirror. The journal entry is kept (and logged) rather
than silently re-adding it.
"""
import json
from typing import Dict, List, Optional

from .account import AccountClient
from .errors import AccountError, AuthenticationRequired, StorageError
from .logger import get_logger
from .models import PendingChange, Product, SavedProduct, SaveState
from .normalize import from_saved_record
from .storage import now_utc_iso

logger = get_logger(__name__)

MIRROR_KEY = "savedProducts"
PENDING_KEY = "savedProducts:pending"

SAVE = "save"
UNSAVE = "unsave"


class SavedItemsSynchronizer:
    def __init__(self, store, account: AccountClient):
        self.store = store
        self.account = account

    # Local mirror

    def _read_json(self, key: str):
        try:
            raw = self.store.get(key)
        except StorageError as e:
            logger.error("Could not read %s from local storage: %s", key, e)
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("Corrupt %s in local storage: %s", key, e)
            return None

    def _write_json(self, key: str, value) -> None:
        try:
            self.store.set(key, json.dumps(value))
        except StorageError as e:
            logger.error("Could not write %s to local storage: %s", key, e)

    def local_items(self) -> List[SavedProduct]:
        """The mirror as last written; never touches the network."""
        data = self._read_json(MIRROR_KEY)
        if not isinstance(data, list):
            return []
        items: List[SavedProduct] = []
        for entry in data:
            try:
                items.append(SavedProduct.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable saved entry: %s", e)
        return items

    def _write_mirror(self, items: List[SavedProduct]) -> None:
        self._write_json(MIRROR_KEY, [it.to_dict() for it in items])

    def is_saved(self, product_id: str) -> bool:
        return any(it.product_id == product_id for it in self.local_items())

    # Pending-sync journal

    def _read_pending(self) -> Dict[str, PendingChange]:
        data = self._read_json(PENDING_KEY)
        if not isinstance(data, list):
            return {}
        out: Dict[str, PendingChange] = {}
        for entry in data:
            try:
                change = PendingChange.from_dict(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable pending entry: %s", e)
                continue
            out[change.product_id] = change
        return out

    def _write_pending(self, pending: Dict[str, PendingChange]) -> None:
        if not pending:
            try:
                self.store.delete(PENDING_KEY)
            except StorageError as e:
                logger.error("Could not clear pending journal: %s", e)
            return
        self._write_json(PENDING_KEY, [c.to_dict() for c in pending.values()])

    def pending(self) -> List[PendingChange]:
        """Mutations the account backend has not confirmed yet."""
        return list(self._read_pending().values())

    # Remote operations

    def _push(self, op: str, product_id: str, product: Optional[Product]) -> None:
        if op == SAVE:
            if product is None:
                raise ValueError(f"cannot replay save of {product_id} without product data")
            self.account.save_product(product)
        else:
            self.account.delete_saved_product(product_id)

    def toggle_save(self, product: Product) -> SaveState:
        """
        Save product if absent from the mirror, unsave it otherwise.
        The mirror is updated whatever the remote outcome.
        """
        items = self.local_items()
        currently_saved = any(it.product_id == product.id for it in items)
        op = UNSAVE if currently_saved else SAVE

        synced = True
        authenticated = True
        try:
            self._push(op, product.id, product)
        except AuthenticationRequired as e:
            logger.info("Not logged in; %s of %s kept local only (%s).", op, product.id, e)
            synced = False
            authenticated = False
        except AccountError as e:
            logger.warning("Remote %s of %s failed; keeping local change: %s", op, product.id, e)
            synced = False

        if currently_saved:
            items = [it for it in items if it.product_id != product.id]
        else:
            items.append(SavedProduct(product=product, saved_at=now_utc_iso()))
        self._write_mirror(items)

        pending = self._read_pending()
        if synced:
            if pending.pop(product.id, None) is not None:
                self._write_pending(pending)
        else:
            pending[product.id] = PendingChange(
                product_id=product.id,
                op=op,
                product=product if op == SAVE else None,
                recorded_at=now_utc_iso(),
            )
            self._write_pending(pending)

        return SaveState(
            product_id=product.id,
            saved=not currently_saved,
            synced=synced,
            authenticated=authenticated,
        )

    def list(self) -> List[SavedProduct]:
        """
        Fresh remote listing when reachable (overwrites the mirror),
        otherwise the mirror unchanged.
        """
        try:
            records = self.account.get_saved_products()
        except AuthenticationRequired:
            logger.debug("Not logged in; serving saved items from local mirror.")
            return self.local_items()
        except AccountError as e:
            logger.warning("Could not fetch saved items; using local mirror: %s", e)
            return self.local_items()

        remote: List[SavedProduct] = []
        seen = set()
        for record in records:
            if not isinstance(record, dict):
                continue
            try:
                item = from_saved_record(record)
            except (TypeError, ValueError) as e:
                logger.warning("Skipping unreadable remote saved record: %s", e)
                continue
            if item.product_id in seen:
                continue
            seen.add(item.product_id)
            remote.append(item)

        self._write_mirror(remote)
        self._reconcile_pending(seen)
        logger.info("Saved items synced from remote (%d items).", len(remote))
        return remote

    def _reconcile_pending(self, remote_ids) -> None:
        pending = self._read_pending()
        if not pending:
            return
        still_pending: Dict[str, PendingChange] = {}
        for pid, change in pending.items():
            agrees = (pid in remote_ids) == (change.op == SAVE)
            if not agrees:
                still_pending[pid] = change
        if still_pending:
            logger.warning(
                "Remote saved list disagrees with %d unsynced local change(s): %s",
                len(still_pending),
                sorted(still_pending),
            )
        if len(still_pending) != len(pending):
            self._write_pending(still_pending)

    def retry_pending(self) -> List[PendingChange]:
        """
        Replay journaled changes against the backend. Returns what is still
        pending afterwards.
        """
        pending = self._read_pending()
        if not pending:
            return []

        remaining: Dict[str, PendingChange] = {}
        changes = list(pending.items())
        for i, (pid, change) in enumerate(changes):
            try:
                self._push(change.op, pid, change.product)
                logger.info("Replayed pending %s of %s.", change.op, pid)
            except AuthenticationRequired as e:
                logger.info("Not logged in; pending changes kept: %s", e)
                # Entries already replayed in this pass are confirmed
                remaining.update(changes[i:])
                break
            except (AccountError, ValueError) as e:
                logger.warning("Replay of %s for %s failed: %s", change.op, pid, e)
                remaining[pid] = change

        self._write_pending(remaining)
        return list(remaining.values())

    def clear_all(self) -> bool:
        """
        Remove every saved product. Returns True when the backend confirmed.
        Raises AuthenticationRequired (with nothing changed) when logged out.
        """
        if not self.account.is_authenticated():
            raise AuthenticationRequired("Clearing saved products requires login")

        items = self.local_items()
        synced = True
        try:
            self.account.clear_saved_products()
        except AuthenticationRequired:
            raise
        except AccountError as e:
            logger.warning("Remote clear of saved items failed; clearing locally: %s", e)
            synced = False

        self._write_mirror([])
        if synced:
            self._write_pending({})
        else:
            ts = now_utc_iso()
            # Unconfirmed saves must not be replayed after a clear
            pending = {
                pid: c for pid, c in self._read_pending().items() if c.op != SAVE
            }
            for it in items:
                pending[it.product_id] = PendingChange(
                    product_id=it.product_id, op=UNSAVE, recorded_at=ts
                )
            self._write_pending(pending)
        return synced
