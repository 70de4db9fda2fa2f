"""
In-memory wizard sessions
One RepairWizard per customer browser tab, dropped on submit or when the store fills up
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from domain.errors import SessionNotFoundError
from domain.models import utcnow
from services.repair_wizard import RepairWizard

logger = logging.getLogger(__name__)


@dataclass
class WizardSession:
    # what we keep per session
    session_id: str
    token: str
    wizard: RepairWizard
    created_at: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)


class WizardSessionStore:
    def __init__(self, max_sessions: int = 500):
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, WizardSession]" = OrderedDict()

        # track some stats
        self.created = 0
        self.evicted = 0

    def add(self, token: str, wizard: RepairWizard) -> WizardSession:
        while len(self._sessions) >= self.max_sessions:
            # oldest untouched session goes first
            _, oldest = self._sessions.popitem(last=False)
            oldest.wizard.close()
            self.evicted += 1
            logger.info(f"Evicted wizard session {oldest.session_id}")

        session = WizardSession(session_id=uuid.uuid4().hex, token=token, wizard=wizard)
        self._sessions[session.session_id] = session
        self.created += 1
        return session

    def get(self, session_id: str, token: Optional[str] = None) -> WizardSession:
        """Look up a session, the token has to match the one that opened it"""
        session = self._sessions.get(session_id)
        if session is None or (token is not None and session.token != token):
            raise SessionNotFoundError("Wizard session not found or expired")

        session.last_seen = utcnow()
        self._sessions.move_to_end(session_id)
        return session

    def discard(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.wizard.close()

    def clear(self):
        for session in self._sessions.values():
            session.wizard.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_sessions": len(self._sessions),
            "created": self.created,
            "evicted": self.evicted,
            "max_sessions": self.max_sessions,
        }
