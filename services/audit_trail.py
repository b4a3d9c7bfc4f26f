"""
Append-only audit trail for security events.

``record`` never blocks the caller on the database and never raises: request
data (actor, ip, user agent, timestamp) is captured on the calling thread, and
the insert runs on a small background pool with its own session. Failed writes
are logged and counted in ``failed_writes``.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple

from flask import g, has_request_context

from models import storage
from models.audit_log import AuditLog, STATUS_FAILURE, STATUS_SUCCESS
from utils.clock import Clock
from utils.security import client_ip, user_agent

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"
SYSTEM = "system"


@dataclass(frozen=True)
class AuditEvent:
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    actor: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    status: str = STATUS_SUCCESS
    details: Optional[str] = None
    error_message: Optional[str] = None


def resolve_actor() -> str:
    """Authenticated user, else "anonymous" inside a request, else "system"."""
    if not has_request_context():
        return SYSTEM
    user = getattr(g, "current_user", None)
    if user is not None:
        return user.username
    return ANONYMOUS


def _clip(value: Optional[str], size: int) -> Optional[str]:
    if value is None:
        return None
    return value[:size]


class AuditTrail:
    def __init__(self, clock: Clock | None = None, max_workers: int = 2):
        self.clock = clock or Clock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="audit")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._failed_writes = 0

    @property
    def failed_writes(self) -> int:
        with self._lock:
            return self._failed_writes

    def record(self, event: AuditEvent) -> Optional[Future]:
        """Queue ``event`` for writing. Returns the write future, or None if it could not be queued."""
        event = replace(
            event,
            actor=event.actor or resolve_actor(),
            ip=event.ip or client_ip(),
            user_agent=event.user_agent or user_agent(),
        )
        timestamp = self.clock.now()
        try:
            future = self._executor.submit(self._write, event, timestamp)
        except RuntimeError:
            # executor already shut down
            logger.exception("Audit event %s dropped", event.action)
            self._count_failure()
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def log_success(self, action, resource_type=None, resource_id=None, details=None, actor=None, ip=None):
        return self.record(AuditEvent(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            actor=actor,
            ip=ip,
            status=STATUS_SUCCESS,
        ))

    def log_failure(self, action, resource_type=None, resource_id=None, details=None,
                    error_message=None, actor=None, ip=None):
        return self.record(AuditEvent(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            error_message=error_message,
            actor=actor,
            ip=ip,
            status=STATUS_FAILURE,
        ))

    def _write(self, event: AuditEvent, timestamp: datetime) -> None:
        try:
            entry = AuditLog(
                username=_clip(event.actor, 50),
                action=event.action,
                resource_type=event.resource_type,
                resource_id=_clip(event.resource_id, 100),
                details=_clip(event.details, 2000),
                ip_address=_clip(event.ip, 45),
                user_agent=_clip(event.user_agent, 500),
                status=event.status,
                error_message=_clip(event.error_message, 1000),
                timestamp=timestamp,
            )
            storage.new(entry)
            storage.save()
        except Exception:
            logger.exception("Failed to write audit event %s", event.action)
            self._count_failure()
        finally:
            storage.close()

    def _count_failure(self) -> None:
        with self._lock:
            self._failed_writes += 1

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = 10.0) -> bool:
        """Wait for queued writes. True when nothing is left pending."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    # Queries

    def search(
        self,
        username: str | None = None,
        action: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[AuditLog], int]:
        session = storage.get_session()
        query = session.query(AuditLog)
        if username:
            query = query.filter(AuditLog.username == username)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)
        if start:
            query = query.filter(AuditLog.timestamp >= start)
        if end:
            query = query.filter(AuditLog.timestamp <= end)

        total = query.count()
        rows = (
            query.order_by(AuditLog.timestamp.desc(), AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def delete_older_than(self, cutoff: datetime) -> int:
        session = storage.get_session()
        count = (
            session.query(AuditLog)
            .filter(AuditLog.timestamp < cutoff)
            .delete(synchronize_session=False)
        )
        storage.save()
        if count:
            logger.info("Audit cleanup: removed %d entries older than %s", count, cutoff)
        return count
