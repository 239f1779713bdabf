"""
Database layer using aiosqlite for the bridge relay.
Persists monitor cursors and the ledger of settled mints and refunds.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import aiosqlite

from core.models import ExchangeRecord, TransactionLocation

logger = logging.getLogger(__name__)


class Database:
    """Async state store using SQLite."""

    def __init__(self, db_path: str):
        """Initialize database with path."""
        self.db_path = db_path
        self.conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Connect to the database and create tables if needed."""
        self.conn = await aiosqlite.connect(self.db_path)
        self.conn.row_factory = aiosqlite.Row
        await self._create_tables()
        logger.info(f"Database connected: {self.db_path}")

    async def close(self):
        """Close database connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
            logger.info("Database connection closed")

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS monitor_states (
                monitor_key TEXT PRIMARY KEY,
                block_hash TEXT NOT NULL,
                tx_id TEXT,
                updated_at TEXT NOT NULL
            )
        """)

        # Amounts are stored as text to keep them exact
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS exchange_histories (
                tx_id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                sender TEXT NOT NULL,
                recipient TEXT NOT NULL,
                amount TEXT NOT NULL,
                fee TEXT NOT NULL,
                destination_tx_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await self.conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_exchange_sender ON exchange_histories(sender)
        """)

        await self.conn.commit()

    # Monitor state operations
    async def store(self, monitor_key: str, location: TransactionLocation) -> None:
        """Overwrite the cursor of a monitor."""
        await self.conn.execute("""
            INSERT INTO monitor_states (monitor_key, block_hash, tx_id, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(monitor_key) DO UPDATE SET
                block_hash=excluded.block_hash,
                tx_id=excluded.tx_id,
                updated_at=excluded.updated_at
        """, (monitor_key, location.block_hash, location.tx_id, datetime.now(timezone.utc).isoformat()))
        await self.conn.commit()
        logger.debug(f"Stored cursor for {monitor_key}: {location.block_hash} / {location.tx_id}")

    async def load(self, monitor_key: str) -> Optional[TransactionLocation]:
        """Get the stored cursor of a monitor, if any."""
        cursor = await self.conn.execute("""
            SELECT block_hash, tx_id FROM monitor_states WHERE monitor_key = ?
        """, (monitor_key,))
        row = await cursor.fetchone()

        if not row:
            return None
        return TransactionLocation(block_hash=row['block_hash'], tx_id=row['tx_id'])

    # Exchange history operations
    async def record(self, entry: ExchangeRecord) -> None:
        """Record a settled transaction. Re-recording the same tx keeps the first entry."""
        created_at = entry.created_at or datetime.now(timezone.utc)
        await self.conn.execute("""
            INSERT OR IGNORE INTO exchange_histories
                (tx_id, kind, sender, recipient, amount, fee, destination_tx_hash, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.tx_id,
            entry.kind,
            entry.sender,
            entry.recipient,
            entry.amount,
            str(entry.fee),
            entry.destination_tx_hash,
            created_at.isoformat(),
        ))
        await self.conn.commit()

    async def get(self, tx_id: str) -> Optional[ExchangeRecord]:
        """Get the settlement recorded for a source transaction."""
        cursor = await self.conn.execute("""
            SELECT * FROM exchange_histories WHERE tx_id = ?
        """, (tx_id,))
        row = await cursor.fetchone()

        if not row:
            return None
        return ExchangeRecord(
            kind=row['kind'],
            tx_id=row['tx_id'],
            sender=row['sender'],
            recipient=row['recipient'],
            amount=row['amount'],
            fee=Decimal(row['fee']),
            destination_tx_hash=row['destination_tx_hash'],
            created_at=datetime.fromisoformat(row['created_at']),
        )
