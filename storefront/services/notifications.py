from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, MutableMapping

from storefront.constants import NOTIFICATION_KINDS

SESSION_KEY = "notifications"
AUTO_HIDE_SECONDS = 3


class NotificationQueue:
    """Toast messages waiting to be shown on the next rendered page."""

    def __init__(self, session: MutableMapping[str, Any]) -> None:
        self.session = session

    def _pending(self) -> List[Dict[str, Any]]:
        return list(self.session.get(SESSION_KEY) or [])

    def show(self, message: str, kind: str = "info") -> str:
        if kind not in NOTIFICATION_KINDS:
            raise ValueError(f"unknown notification kind: {kind}")
        nid = uuid.uuid4().hex[:12]
        pending = self._pending()
        pending.append({"id": nid, "message": message, "type": kind, "created_at": time.time()})
        self.session[SESSION_KEY] = pending
        return nid

    def hide(self, nid: str) -> None:
        self.session[SESSION_KEY] = [n for n in self._pending() if n["id"] != nid]

    def drain(self) -> List[Dict[str, Any]]:
        pending = self._pending()
        self.session[SESSION_KEY] = []
        return pending

    def __len__(self) -> int:
        return len(self._pending())
