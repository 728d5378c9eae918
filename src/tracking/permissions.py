"""SQLite-backed permission state for the daemon host."""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import structlog

from db import init_schema, wal_connect
from shared_types import AuthorizationState

logger = structlog.get_logger().bind(source="permissions")

_DDL = """
CREATE TABLE IF NOT EXISTS location_permission (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    state TEXT NOT NULL,
    updated_at TIMESTAMP,
    upgrade_requested_at TIMESTAMP
)
"""


class PermissionStore:
    """Host-side permission record.

    The user answers the prompt with ``placelog permission grant``; the change
    is forwarded to ``on_change`` (normally ``AuthorizationGate.on_authorization_changed``).
    """

    def __init__(self, db_path: str | Path, on_change: Optional[Callable[[AuthorizationState], None]] = None):
        self.db_path = init_schema(db_path, _DDL)
        self.on_change = on_change

    def _row(self) -> Optional[sqlite3.Row]:
        with wal_connect(self.db_path, row_factory=True) as conn:
            return conn.execute("SELECT * FROM location_permission WHERE id = 1").fetchone()

    def current_state(self) -> AuthorizationState:
        row = self._row()
        if row is None:
            return AuthorizationState.UNDETERMINED
        try:
            return AuthorizationState(row["state"])
        except ValueError:
            logger.warning("permission_state_unknown", state=row["state"])
            return AuthorizationState.UNDETERMINED

    def request_upgrade(self) -> None:
        """Record a pending prompt for 'always' authorization."""
        state = self.current_state()
        if state == AuthorizationState.ALWAYS:
            return
        now = datetime.now(timezone.utc).isoformat()
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO location_permission (id, state, updated_at, upgrade_requested_at)
                VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET upgrade_requested_at = ?
                """,
                (str(state), now, now, now),
            )
        logger.info("permission_prompt_pending", state=state)

    def upgrade_requested_at(self) -> Optional[str]:
        row = self._row()
        return row["upgrade_requested_at"] if row else None

    def set_state(self, state: AuthorizationState) -> None:
        """Apply the user's decision and notify the listener."""
        state = AuthorizationState(state)
        now = datetime.now(timezone.utc).isoformat()
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO location_permission (id, state, updated_at, upgrade_requested_at)
                VALUES (1, ?, ?, NULL)
                ON CONFLICT(id) DO UPDATE SET state = ?, updated_at = ?, upgrade_requested_at = NULL
                """,
                (str(state), now, str(state), now),
            )
        logger.info("permission_state_set", state=state)
        if self.on_change:
            self.on_change(state)
