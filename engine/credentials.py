# engine/credentials.py
from typing import Optional

from .errors import StorageError
from .logger import get_logger
from .models import Credentials

logger = get_logger(__name__)

# Written by the login flow; only read here.
TOKEN_KEY = "userToken"
USER_ID_KEY = "userId"
EMAIL_KEY = "userEmail"


def load_credentials(store) -> Optional[Credentials]:
    """Return the stored session, or None when nobody is logged in."""
    try:
        token = store.get(TOKEN_KEY)
        if not token or not token.strip():
            return None
        return Credentials(
            token=token.strip(),
            user_id=store.get(USER_ID_KEY),
            email=store.get(EMAIL_KEY),
        )
    except StorageError as e:
        logger.error("Could not read stored credentials: %s", e)
        return None
