"""
Audit logging for admin actions

Records every admin mutation for compliance and rollback.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from laudato.core.datastore import Datastore
from laudato.schemas.records import AuditLogEntry


@dataclass
class AuditPage:
    """One page of audit entries, newest first"""
    entries: List[AuditLogEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


class AuditLogger:
    """
    Audit logger backed by the datastore

    Entries are append-only; nothing here updates or deletes them.
    """

    def __init__(self, datastore: Datastore):
        self._datastore = datastore

    def log_admin_action(
        self,
        actor_id: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Record an admin action

        Args:
            actor_id: Admin who performed the action
            action: e.g. "user_role_updated", "redemption_verified"
            entity_type: Affected table/module, e.g. "users"
            entity_id: Affected row ID
            old_values: Snapshot before the change
            new_values: Snapshot after the change

        Returns:
            The stored entry
        """
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values or None,
            new_values=new_values or None,
        )
        self._datastore.insert_audit_log(entry)
        return entry

    def query(
        self,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        actor_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> AuditPage:
        """Filtered, paginated view of the audit trail"""
        page = max(page, 1)
        entries, total = self._datastore.query_audit_logs(
            action=action,
            entity_type=entity_type,
            actor_id=actor_id,
            start=start,
            end=end,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return AuditPage(entries=entries, total=total, page=page, limit=limit)
