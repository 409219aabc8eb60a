# finassist/finance/repository.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import aiosqlite

from .models import Transaction, TransactionCreate, TransactionUpdate

logger = logging.getLogger(__name__)

DEMO_TRANSACTIONS: list[Transaction] = [
    Transaction.model_validate(row)
    for row in [
        {"id": "demo-1", "title": "Salary", "date": "2025-01-15",
         "amount": 5500, "type": "income", "category": "Salary"},
        {"id": "demo-2", "title": "Freelance design", "date": "2025-01-20",
         "amount": 1200, "type": "income", "category": "Freelance"},
        {"id": "demo-3", "title": "Rent", "date": "2025-01-10",
         "amount": 1500, "type": "expense", "category": "Housing"},
        {"id": "demo-4", "title": "Supermarket", "date": "2025-01-12",
         "amount": 350, "type": "expense", "category": "Food"},
        {"id": "demo-5", "title": "Uber", "date": "2025-01-14",
         "amount": 45, "type": "expense", "category": "Transport"},
        {"id": "demo-6", "title": "Netflix", "date": "2025-01-16",
         "amount": 55, "type": "expense", "category": "Entertainment"},
        {"id": "demo-7", "title": "Pharmacy", "date": "2025-01-18",
         "amount": 120, "type": "expense", "category": "Health"},
        {"id": "demo-8", "title": "Restaurant", "date": "2025-01-22",
         "amount": 180, "type": "expense", "category": "Food"},
        {"id": "demo-9", "title": "Gym", "date": "2025-01-05",
         "amount": 150, "type": "expense", "category": "Health"},
        {"id": "demo-10", "title": "Electricity bill", "date": "2025-01-08",
         "amount": 220, "type": "expense", "category": "Bills"},
    ]
]

_COLUMNS = "id, title, amount, type, category, date, ai_categorized"


class TransactionRepository(Protocol):
    """
    Interface for storing and retrieving a user's transactions.
    """

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        Return the user's transactions ordered by date, most recent first.
        """
        ...

    async def add_transaction(
        self, user_id: str, transaction: TransactionCreate
    ) -> Transaction:
        """
        Store a new transaction and return the persisted record.
        """
        ...

    async def update_transaction(
        self, user_id: str, transaction_id: str, updates: TransactionUpdate
    ) -> Transaction | None:
        """
        Apply a partial update. Returns None if the transaction does not
        exist or belongs to another user.
        """
        ...

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        """
        Delete a transaction. Returns True if a row was removed.
        """
        ...


class AsyncSqlTransactionRepo(TransactionRepository):
    """
    SQLite implementation of TransactionRepository.
    Every query is scoped by user_id.
    """

    def __init__(self, db_path: str = "transactions.db"):
        self.db_path = db_path
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._connection_lock = asyncio.Lock()  # Serialize database access
        self._connection: aiosqlite.Connection | None = None

    async def _initialize(self) -> None:
        """
        Lazily create tables and indices on first use.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return

            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=30000")

            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    amount REAL NOT NULL,
                    type TEXT NOT NULL,
                    category TEXT NOT NULL,
                    date TEXT NOT NULL,
                    ai_categorized INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await self._connection.execute("""
                CREATE INDEX IF NOT EXISTS idx_user_date
                ON transactions(user_id, date)
            """)
            await self._connection.commit()
            self._initialized = True

    async def close(self) -> None:
        """
        Close the persistent database connection.
        """
        if self._connection:
            await self._connection.close()
            self._connection = None
            self._initialized = False

    async def __aenter__(self) -> AsyncSqlTransactionRepo:
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Database connection not available")
        return self._connection

    @staticmethod
    def _row_to_transaction(row: tuple[Any, ...]) -> Transaction:
        return Transaction(
            id=row[0],
            title=row[1],
            amount=row[2],
            type=row[3],
            category=row[4],
            date=row[5],
            ai_categorized=bool(row[6]),
        )

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        await self._initialize()
        async with self._connection_lock:
            cursor = await self._conn().execute(f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE user_id = ?
                ORDER BY date DESC, created_at DESC, rowid DESC
            """, (user_id,))
            rows = await cursor.fetchall()
        return [self._row_to_transaction(row) for row in rows]

    async def get_transaction(
        self, user_id: str, transaction_id: str
    ) -> Transaction | None:
        await self._initialize()
        async with self._connection_lock:
            cursor = await self._conn().execute(f"""
                SELECT {_COLUMNS} FROM transactions
                WHERE id = ? AND user_id = ?
            """, (transaction_id, user_id))
            row = await cursor.fetchone()
        return self._row_to_transaction(row) if row else None

    async def add_transaction(
        self, user_id: str, transaction: TransactionCreate
    ) -> Transaction:
        await self._initialize()
        record = Transaction(**transaction.model_dump())
        async with self._connection_lock:
            await self._conn().execute(f"""
                INSERT INTO transactions (user_id, {_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                user_id,
                record.id,
                record.title,
                record.amount,
                record.type,
                record.category,
                record.date.isoformat(),
                int(record.ai_categorized),
            ))
            await self._conn().commit()
        logger.info(f"Added transaction {record.id} for user {user_id}")
        return record

    async def update_transaction(
        self, user_id: str, transaction_id: str, updates: TransactionUpdate
    ) -> Transaction | None:
        existing = await self.get_transaction(user_id, transaction_id)
        if existing is None:
            return None

        changes = updates.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return existing

        updated = existing.model_copy(update=changes)
        async with self._connection_lock:
            await self._conn().execute("""
                UPDATE transactions
                SET title = ?, amount = ?, type = ?, category = ?, date = ?,
                    ai_categorized = ?
                WHERE id = ? AND user_id = ?
            """, (
                updated.title,
                updated.amount,
                updated.type,
                updated.category,
                updated.date.isoformat(),
                int(updated.ai_categorized),
                transaction_id,
                user_id,
            ))
            await self._conn().commit()
        return updated

    async def delete_transaction(self, user_id: str, transaction_id: str) -> bool:
        await self._initialize()
        async with self._connection_lock:
            cursor = await self._conn().execute(
                "DELETE FROM transactions WHERE id = ? AND user_id = ?",
                (transaction_id, user_id),
            )
            await self._conn().commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted transaction {transaction_id} for user {user_id}")
        return deleted

    async def clear_user(self, user_id: str) -> None:
        """Remove every transaction belonging to a user."""
        await self._initialize()
        async with self._connection_lock:
            await self._conn().execute(
                "DELETE FROM transactions WHERE user_id = ?", (user_id,)
            )
            await self._conn().commit()


async def load_transactions(
    repo: TransactionRepository,
    user_id: str | None,
    use_demo_fallback: bool = True,
) -> list[Transaction]:
    """
    Load a user's transactions, falling back to demo data for anonymous
    users, empty stores and storage failures when the fallback is enabled.
    """
    if user_id is None:
        return list(DEMO_TRANSACTIONS) if use_demo_fallback else []

    try:
        transactions = await repo.list_transactions(user_id)
    except (aiosqlite.Error, OSError) as e:
        if not use_demo_fallback:
            raise
        logger.warning(f"Failed to load transactions, using demo data: {e}")
        return list(DEMO_TRANSACTIONS)

    if not transactions and use_demo_fallback:
        return list(DEMO_TRANSACTIONS)
    return transactions
