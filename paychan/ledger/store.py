"""SQLite-backed channel state for the local ledger."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from .types import Channel


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_channel(row: sqlite3.Row) -> Channel:
    return Channel(
        channel_id=row["channel_id"],
        sender=row["sender"],
        receiver=row["receiver"],
        gateway=row["gateway"],
        deposit=Decimal(row["deposit"]),
        value=Decimal(row["value"]),
        state=row["state"],
    )


class ChannelStore:
    """Local SQLite store for channels we fund and channels that fund us."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        if db_path.parent != Path("."):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _init_db(self) -> None:
        with closing(self._connect()) as conn, conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS channels (
                    channel_id TEXT PRIMARY KEY,
                    sender TEXT NOT NULL,
                    receiver TEXT NOT NULL,
                    gateway TEXT NOT NULL,
                    deposit TEXT NOT NULL,
                    value TEXT NOT NULL DEFAULT '0',
                    state TEXT NOT NULL CHECK (state IN ('open', 'closed')),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_channels_triple
                    ON channels(sender, receiver, gateway, state);
                """
            )

    def get(self, channel_id: str) -> Channel | None:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT * FROM channels WHERE channel_id = ?", (channel_id,)
            ).fetchone()
        return _row_to_channel(row) if row else None

    def find_open(self, sender: str, receiver: str, gateway: str) -> Channel | None:
        """Return the warm channel for a (sender, receiver, gateway) triple, if any."""
        with closing(self._connect()) as conn:
            row = conn.execute(
                """
                SELECT * FROM channels
                WHERE sender = ? AND receiver = ? AND gateway = ? AND state = 'open'
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (sender, receiver, gateway),
            ).fetchone()
        return _row_to_channel(row) if row else None

    def list_by_sender(self, sender: str, *, include_closed: bool = False) -> list[Channel]:
        query = "SELECT * FROM channels WHERE sender = ?"
        if not include_closed:
            query += " AND state = 'open'"
        query += " ORDER BY created_at ASC, rowid ASC"
        with closing(self._connect()) as conn:
            rows = conn.execute(query, (sender,)).fetchall()
        return [_row_to_channel(row) for row in rows]

    def save(self, channel: Channel) -> None:
        now = _utc_now()
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO channels (
                    channel_id, sender, receiver, gateway, deposit, value, state,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(channel_id) DO UPDATE SET
                    deposit = excluded.deposit,
                    value = excluded.value,
                    state = excluded.state,
                    updated_at = excluded.updated_at
                """,
                (
                    channel.channel_id,
                    channel.sender,
                    channel.receiver,
                    channel.gateway,
                    str(channel.deposit),
                    str(channel.value),
                    channel.state,
                    now,
                    now,
                ),
            )

    def set_state(self, channel_id: str, state: str) -> bool:
        with closing(self._connect()) as conn, conn:
            cur = conn.execute(
                "UPDATE channels SET state = ?, updated_at = ? WHERE channel_id = ?",
                (state, _utc_now(), channel_id),
            )
        return cur.rowcount > 0
