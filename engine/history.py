# engine/history.py
from typing import Any, Dict, List

from .account import AccountClient
from .errors import AccountError, AuthenticationRequired
from .logger import get_logger
from .models import HistoryTerm

logger = get_logger(__name__)

BUCKETS = ("today", "pastWeek", "pastMonth")


def parse_history(payload: Dict[str, Any]) -> List[HistoryTerm]:
    """
    Flatten the backend's {"today": [...], "pastWeek": [...], "pastMonth": [...]}
    listing, newest bucket first. Buckets are taken as given.
    """
    terms: List[HistoryTerm] = []
    if not isinstance(payload, dict):
        return terms
    for bucket in BUCKETS:
        entries = payload.get(bucket) or []
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, str):
                query, hid, ts = entry, None, None
            elif isinstance(entry, dict):
                query = entry.get("query")
                hid = entry.get("id") or entry.get("_id")
                ts = entry.get("timestamp") or entry.get("createdAt")
            else:
                continue
            if not query or not str(query).strip():
                continue
            terms.append(
                HistoryTerm(
                    query=str(query).strip(),
                    bucket=bucket,
                    id=str(hid) if hid is not None else None,
                    timestamp=str(ts) if ts is not None else None,
                )
            )
    return terms


class SearchHistory:
    """Remote search history. Reads raise AccountError; writes are best-effort."""

    def __init__(self, account: AccountClient):
        self.account = account

    def terms(self) -> List[HistoryTerm]:
        return parse_history(self.account.get_history())

    def record(self, query: str) -> bool:
        try:
            self.account.add_history(query)
        except AuthenticationRequired:
            logger.debug("No auth token found, skipping history save for '%s'.", query)
            return False
        except AccountError as e:
            logger.warning("Error saving search '%s' to history: %s", query, e)
            return False
        logger.debug("Search saved to history: %s", query)
        return True

    def delete(self, history_id: str) -> None:
        self.account.delete_history_item(history_id)

    def clear(self) -> None:
        self.account.clear_history()
