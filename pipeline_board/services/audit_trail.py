"""
Pipeline Board - Client-side audit trail

Bounded, newest-first, in-memory log of CONFIRMED stage changes.
UI convenience only: the server keeps its own audit.
"""

import logging
import uuid
from typing import List, Optional
from pipeline_board import config
from pipeline_board.models import AuditEntry, ItemKind, Stage

logger = logging.getLogger("audit_trail")


class AuditTrail:
    def __init__(self, limit: int = config.AUDIT_TRAIL_LIMIT):
        self.limit = max(0, limit)
        self._entries: List[AuditEntry] = []

    def append(self, entry: AuditEntry) -> AuditEntry:
        if not self.limit:
            return entry
        self._entries.insert(0, entry)
        del self._entries[self.limit:]
        return entry

    def record_stage_change(
        self,
        entity_kind: ItemKind,
        entity_id: str,
        actor: Optional[str],
        new_stage: Stage,
        reason: str,
        old_stage: Optional[Stage] = None,
    ) -> AuditEntry:
        """
        Log one successful stage change.

        Summary: "Stage changed from Quote to Accepted. Reason: Moved via Kanban board"
        """
        new_value = Stage(new_stage).value
        if old_stage is not None:
            summary = f"Stage changed from {Stage(old_stage).value} to {new_value}. Reason: {reason}"
        else:
            summary = f"Stage changed to {new_value}. Reason: {reason}"

        entry = AuditEntry(
            id=f"audit-{uuid.uuid4()}",
            entity_kind=entity_kind,
            entity_id=entity_id,
            action="update",
            actor=actor or "current_user",
            timestamp=config.now_iso(),
            summary=summary,
        )
        logger.info(f"[AUDIT] {entity_id} {summary} by {entry.actor}")
        return self.append(entry)

    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self):
        self._entries = []
