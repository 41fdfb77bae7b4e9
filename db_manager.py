"""
Document store for the pool sniper.
Persists pool records as JSON documents in SQLite and tracks trading positions.
"""

import sqlite3
import json
import logging
from decimal import Decimal
from typing import Optional, Dict, Any, List, Union

from db_schema import CREATE_TABLES_SQL
from errors import PoolNotFound
from models import PoolRecord

logger = logging.getLogger(__name__)

RecordId = Union[str, int]


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder for Decimal types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        return super().default(obj)


class PoolStore:
    def __init__(self, db_path: str):
        """Open the database and create tables if they don't exist."""
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row  # Enable row factory for named access
        self.setup_database()

    def setup_database(self):
        """Create tables if they don't exist."""
        try:
            with self.conn:
                self.conn.executescript(CREATE_TABLES_SQL)
            logger.debug("Database tables ready")
        except sqlite3.Error as e:
            logger.error(f"Error creating database tables: {e}")
            raise

    @staticmethod
    def _parse_id(record_id: RecordId) -> Optional[int]:
        try:
            return int(record_id)
        except (TypeError, ValueError):
            return None

    # ── Pool documents ─────────────────────────────────────────

    def insert_one(self, document: Dict[str, Any]) -> str:
        """Insert a pool document and return its assigned id."""
        payload = json.dumps(document, cls=DecimalEncoder)
        try:
            with self.conn:
                cursor = self.conn.execute(
                    "INSERT INTO pool_records (amm_id, document) VALUES (?, ?)",
                    (document.get('amm_id', ''), payload)
                )
        except sqlite3.Error as e:
            logger.error(f"Error storing pool {document.get('amm_id')}: {e}")
            raise
        record_id = str(cursor.lastrowid)
        logger.info(f"Saved pool document with ID: {record_id}")
        return record_id

    def find_one(self, record_id: RecordId) -> Optional[Dict[str, Any]]:
        """Return the stored document for record_id, or None."""
        row_id = self._parse_id(record_id)
        if row_id is None:
            return None
        cursor = self.conn.execute("SELECT document FROM pool_records WHERE record_id = ?", (row_id,))
        row = cursor.fetchone()
        return json.loads(row['document']) if row else None

    def update_one(self, record_id: RecordId, fields: Dict[str, Any]) -> bool:
        """Merge fields into a stored document. Returns False if it does not exist."""
        document = self.find_one(record_id)
        if document is None:
            return False
        document.update(fields)
        with self.conn:
            cursor = self.conn.execute("""
                UPDATE pool_records
                SET document = ?, updated_at = CURRENT_TIMESTAMP
                WHERE record_id = ?
            """, (json.dumps(document, cls=DecimalEncoder), self._parse_id(record_id)))
        return cursor.rowcount > 0

    def find_by_amm_id(self, amm_id: str) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT record_id, document FROM pool_records WHERE amm_id = ? ORDER BY record_id", (amm_id,)
        )
        return [dict(json.loads(row['document']), record_id=str(row['record_id'])) for row in cursor.fetchall()]

    def get_pool_record(self, record_id: RecordId) -> PoolRecord:
        """Typed lookup; raises PoolNotFound when no document matches."""
        document = self.find_one(record_id)
        if document is None:
            raise PoolNotFound(f"Pool record not found for ID: {record_id}")
        return PoolRecord.from_document(document, record_id=str(record_id))

    # ── Positions ──────────────────────────────────────────────

    def store_position(self, position_data: Dict[str, Any]) -> int:
        """Store a trading position and return its id."""
        with self.conn:
            cursor = self.conn.execute("""
                INSERT INTO positions (
                    record_id, amm_id, buy_amount, sell_target_percentage,
                    target_price, buy_tx, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                str(position_data['record_id']),
                position_data['amm_id'],
                str(position_data['buy_amount']),
                str(position_data['sell_target_percentage']),
                str(position_data['target_price']),
                position_data.get('buy_tx'),
                position_data.get('status', 'bought'),
            ))
        return cursor.lastrowid

    def update_position(self, position_id: int, **fields) -> bool:
        """Update status, sell_tx, error or target fields of a position."""
        allowed = {'status', 'sell_tx', 'error', 'target_price', 'sell_target_percentage', 'buy_amount'}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown position fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False
        assignments = ', '.join(f"{name} = ?" for name in fields)
        values = [str(value) if isinstance(value, Decimal) else value for value in fields.values()]
        with self.conn:
            cursor = self.conn.execute(
                f"UPDATE positions SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE position_id = ?",
                (*values, position_id)
            )
        return cursor.rowcount > 0

    def get_position(self, position_id: int) -> Optional[Dict[str, Any]]:
        cursor = self.conn.execute("SELECT * FROM positions WHERE position_id = ?", (position_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_open_positions(self) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM positions WHERE status IN ('bought', 'watching') ORDER BY opened_at"
        )
        return [dict(row) for row in cursor.fetchall()]

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
