"""SQLite database handler for issued codes."""
import aiosqlite
import asyncio
import csv
import logging
import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from utils.errors import UnknownBatchError

logger = logging.getLogger(__name__)


class CodeDatabase:
    """Handles SQLite database operations for issued codes."""

    def __init__(self, db_path: str):
        """
        Initialize the database handler.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        # Held by issuance while it reads, generates and stores a batch
        self.issue_lock = asyncio.Lock()
        self._ensure_directory()

    def _ensure_directory(self):
        """Ensure the database directory exists."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

    async def setup_database(self):
        """Create tables and indexes if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            # Enable WAL mode for concurrent access
            await db.execute("PRAGMA journal_mode=WAL")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS codes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    code TEXT NOT NULL,
                    template TEXT NOT NULL,
                    batch_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(template, code)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_template
                ON codes(template)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_batch
                ON codes(batch_id)
            """)

            await db.commit()

    async def save_codes(
        self,
        template: str,
        codes: Iterable[str],
        batch_id: str
    ) -> int:
        """
        Store a batch of generated codes.

        Args:
            template: Template the codes were generated from
            codes: The generated codes
            batch_id: Identifier shared by every code of the batch

        Returns:
            Number of codes stored

        Note: Uses INSERT OR IGNORE, a code already stored for the same
        template is not stored twice.
        """
        created_at = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        data_to_insert = [(code, template, batch_id, created_at) for code in codes]
        if not data_to_insert:
            return 0

        async with aiosqlite.connect(self.db_path, timeout=5.0) as db:
            before = db.total_changes
            await db.executemany("""
                INSERT OR IGNORE INTO codes
                (code, template, batch_id, created_at)
                VALUES (?, ?, ?, ?)
            """, data_to_insert)
            await db.commit()
            saved = db.total_changes - before

        if saved < len(data_to_insert):
            logger.warning(
                "Batch %s: %d of %d code(s) were already stored",
                batch_id, len(data_to_insert) - saved, len(data_to_insert)
            )
        return saved

    async def get_codes(self, template: str) -> List[str]:
        """
        Retrieve every code issued for a template.

        Args:
            template: Template string

        Returns:
            List of codes, oldest first
        """
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("""
                SELECT code
                FROM codes
                WHERE template = ?
                ORDER BY id ASC
            """, (template,)) as cursor:
                rows = await cursor.fetchall()
                return [row[0] for row in rows]

    async def count_codes(self, template: str) -> int:
        """Count the codes issued for a template."""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("""
                SELECT COUNT(*) FROM codes WHERE template = ?
            """, (template,)) as cursor:
                row = await cursor.fetchone()
                return row[0]

    async def get_batches(self, template: Optional[str] = None) -> List[Dict]:
        """
        List issued batches, newest first.

        Args:
            template: Optional template filter (None = all templates)

        Returns:
            List of dicts with batch_id, template, count and created_at
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            if template:
                query = """
                    SELECT batch_id, template, COUNT(*) as count, MIN(created_at) as created_at
                    FROM codes
                    WHERE template = ?
                    GROUP BY batch_id, template
                    ORDER BY MIN(id) DESC
                """
                params = (template,)
            else:
                query = """
                    SELECT batch_id, template, COUNT(*) as count, MIN(created_at) as created_at
                    FROM codes
                    GROUP BY batch_id, template
                    ORDER BY MIN(id) DESC
                """
                params = ()

            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [dict(row) for row in rows]

    async def delete_batch(self, batch_id: str) -> int:
        """
        Remove every code of a batch, making them available again.

        Args:
            batch_id: Batch identifier

        Returns:
            Number of codes removed

        Raises:
            UnknownBatchError: If no code belongs to the batch
        """
        async with aiosqlite.connect(self.db_path, timeout=5.0) as db:
            result = await db.execute("""
                DELETE FROM codes
                WHERE batch_id = ?
            """, (batch_id,))
            await db.commit()
            deleted = result.rowcount

        if deleted == 0:
            raise UnknownBatchError(f"No codes found for batch {batch_id}")
        logger.info("Deleted %d code(s) of batch %s", deleted, batch_id)
        return deleted

    async def export_to_csv(
        self,
        output_path: str,
        template: Optional[str] = None,
        batch_id: Optional[str] = None
    ) -> int:
        """
        Export issued codes to a CSV file.

        Args:
            output_path: Path for the CSV file
            template: Optional template filter
            batch_id: Optional batch filter

        Returns:
            Number of codes exported
        """
        conditions = []
        params = []
        if template:
            conditions.append("template = ?")
            params.append(template)
        if batch_id:
            conditions.append("batch_id = ?")
            params.append(batch_id)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(f"""
                SELECT code, template, batch_id, created_at
                FROM codes
                {where}
                ORDER BY id ASC
            """, params) as cursor:
                rows = await cursor.fetchall()

        # Write to CSV
        with open(output_path, 'w', newline='', encoding='utf-8') as csvfile:
            if rows:
                fieldnames = ['code', 'template', 'batch_id', 'created_at']
                writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
                writer.writeheader()

                for row in rows:
                    writer.writerow(dict(row))

        return len(rows)
