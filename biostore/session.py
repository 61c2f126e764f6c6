"""
Session Manager Module

Single-slot cache of the offline session: written after a successful
biometric match made while the identity provider has not confirmed a
session, cleared as soon as the provider confirms a sign-in. Local only,
no history.
"""

import logging
from typing import Optional

from biostore.context import StoreContext
from biostore.models import OfflineSession
from biostore.persistence import SESSION

logger = logging.getLogger(__name__)


SESSION_KEY = "offline-session"


class SessionManager:
    """Stores at most one OfflineSession."""

    def __init__(self, context: StoreContext):
        self.context = context

    def set(
        self,
        identity_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> OfflineSession:
        """Write the offline session, replacing any existing one."""
        session = OfflineSession(identity_id=identity_id, email=email, display_name=display_name)
        self.context.persistence.set(SESSION, SESSION_KEY, session.to_dict())
        logger.info(f"Offline session opened for {identity_id}")
        return session

    def get(self) -> Optional[OfflineSession]:
        raw = self.context.persistence.get(SESSION, SESSION_KEY)
        if raw is None:
            return None
        try:
            return OfflineSession.from_dict(raw)
        except ValueError as e:
            logger.error(f"Discarding malformed offline session: {e}")
            return None

    def clear(self) -> None:
        self.context.persistence.remove(SESSION, SESSION_KEY)
        logger.debug("Offline session cleared")
