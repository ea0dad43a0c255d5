"""SQLite-backed storage for the task aggregate, wallets, reviews and notifications."""

from __future__ import annotations

import contextlib
import json
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

from task_market_service.services.geo import haversine_km

if TYPE_CHECKING:
    from collections.abc import Iterator


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class DuplicateBidError(Exception):
    """Raised when a worker already holds a non-rejected bid on the task."""


class DuplicateAcceptedBidError(Exception):
    """Raised when a second bid on the same task would become accepted."""


class DuplicateEscrowError(Exception):
    """Raised when an escrow already exists for the task."""


class DuplicateReviewError(Exception):
    """Raised when a review already exists for the task/worker pair."""


_TASK_COLUMNS: tuple[str, ...] = (
    "task_id",
    "poster_id",
    "title",
    "description",
    "category",
    "budget",
    "latitude",
    "longitude",
    "city",
    "address",
    "scheduled_date",
    "scheduled_time",
    "is_instant_job",
    "accepted_bid_amount",
    "state",
    "assigned_worker_id",
    "worker_arrived",
    "completion_requested",
    "completion_photo_url",
    "version",
    "created_at",
    "updated_at",
    "accepted_at",
    "completed_at",
    "cancelled_at",
)
_BID_COLUMNS: tuple[str, ...] = (
    "bid_id",
    "task_id",
    "worker_id",
    "amount",
    "message",
    "status",
    "created_at",
    "updated_at",
)
_ESCROW_COLUMNS: tuple[str, ...] = (
    "task_id",
    "amount",
    "platform_fee",
    "total",
    "status",
    "funding_model",
    "created_at",
    "resolved_at",
)
_TRANSACTION_COLUMNS: tuple[str, ...] = (
    "tx_id",
    "user_id",
    "type",
    "amount",
    "balance_after",
    "description",
    "task_id",
    "created_at",
)
_REVIEW_COLUMNS: tuple[str, ...] = (
    "review_id",
    "task_id",
    "worker_id",
    "poster_id",
    "star_rating",
    "per_category_ratings",
    "text",
    "created_at",
)
_NOTIFICATION_COLUMNS: tuple[str, ...] = (
    "notification_id",
    "recipient_id",
    "type",
    "related_entity_id",
    "is_read",
    "created_at",
)


def _placeholders(columns: tuple[str, ...]) -> str:
    return ", ".join("?" for _ in columns)


class EntityStore:
    """
    SQLite-backed storage for every entity the lifecycle engine touches.

    Writes made inside ``transaction()`` commit or roll back together.
    Writes made outside one run in their own single-statement transaction.
    Task rows carry a ``version`` that ``update_task`` bumps on every
    successful compare-and-set, which is how stale aggregate writes are
    detected.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._depth = 0
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._db.create_function("haversine_km", 4, haversine_km, deterministic=True)
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    poster_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL,
                    category TEXT NOT NULL,
                    budget INTEGER NOT NULL CHECK (budget > 0),
                    latitude REAL,
                    longitude REAL,
                    city TEXT,
                    address TEXT,
                    scheduled_date TEXT,
                    scheduled_time TEXT,
                    is_instant_job INTEGER NOT NULL DEFAULT 0,
                    accepted_bid_amount INTEGER,
                    state TEXT NOT NULL DEFAULT 'open',
                    assigned_worker_id TEXT,
                    worker_arrived INTEGER NOT NULL DEFAULT 0,
                    completion_requested INTEGER NOT NULL DEFAULT 0,
                    completion_photo_url TEXT,
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    accepted_at TEXT,
                    completed_at TEXT,
                    cancelled_at TEXT
                );

                CREATE INDEX IF NOT EXISTS ix_tasks_city_state
                    ON tasks(city, state);

                CREATE TABLE IF NOT EXISTS bids (
                    bid_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    worker_id TEXT NOT NULL,
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    message TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS ux_active_bid_per_worker
                    ON bids(task_id, worker_id)
                    WHERE status != 'rejected';

                CREATE UNIQUE INDEX IF NOT EXISTS ux_accepted_bid_per_task
                    ON bids(task_id)
                    WHERE status = 'accepted';

                CREATE TABLE IF NOT EXISTS escrows (
                    task_id TEXT PRIMARY KEY REFERENCES tasks(task_id),
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    platform_fee INTEGER NOT NULL CHECK (platform_fee >= 0),
                    total INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'locked',
                    funding_model TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    resolved_at TEXT,
                    CHECK (total = amount + platform_fee)
                );

                CREATE TABLE IF NOT EXISTS wallets (
                    user_id TEXT PRIMARY KEY,
                    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS transactions (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    tx_id TEXT NOT NULL UNIQUE,
                    user_id TEXT NOT NULL REFERENCES wallets(user_id),
                    type TEXT NOT NULL,
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    balance_after INTEGER NOT NULL,
                    description TEXT NOT NULL,
                    task_id TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS reviews (
                    review_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    worker_id TEXT NOT NULL,
                    poster_id TEXT NOT NULL,
                    star_rating INTEGER NOT NULL CHECK (star_rating BETWEEN 1 AND 5),
                    per_category_ratings TEXT NOT NULL,
                    text TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE(task_id, worker_id)
                );

                CREATE TABLE IF NOT EXISTS worker_profiles (
                    worker_id TEXT PRIMARY KEY,
                    overall_rating REAL NOT NULL DEFAULT 0,
                    total_reviews INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS worker_category_ratings (
                    worker_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    rating REAL NOT NULL,
                    review_count INTEGER NOT NULL,
                    PRIMARY KEY (worker_id, category)
                );

                CREATE TABLE IF NOT EXISTS notifications (
                    notification_id TEXT PRIMARY KEY,
                    recipient_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    related_entity_id TEXT NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS ix_notifications_recipient
                    ON notifications(recipient_id, created_at);
                """
            )

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run the enclosed writes as one atomic unit.

        Nested calls join the outermost transaction. Any exception rolls
        back everything written since the outermost BEGIN.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
            else:
                self._db.execute("COMMIT")
            finally:
                self._depth = 0

    def _execute(self, query: str, params: tuple[object, ...] | list[object]) -> int:
        with self.transaction():
            cursor = self._db.execute(query, params)
        return int(cursor.rowcount)

    def _fetch_one(
        self,
        query: str,
        params: tuple[object, ...],
        columns: tuple[str, ...],
    ) -> dict[str, Any] | None:
        with self._lock:
            row = self._db.execute(query, params).fetchone()
        if row is None:
            return None
        return {column: row[column] for column in columns}

    def _fetch_all(
        self,
        query: str,
        params: tuple[object, ...] | list[object],
        columns: tuple[str, ...],
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [{column: row[column] for column in columns} for row in rows]

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in _TASK_COLUMNS)
        query = (
            f"INSERT INTO tasks ({', '.join(_TASK_COLUMNS)}) "  # nosec B608
            f"VALUES ({_placeholders(_TASK_COLUMNS)})"
        )
        try:
            self._execute(query, values)
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateTaskError(
                    f"A task with task_id={task_data['task_id']} already exists"
                ) from exc
            raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        return self._fetch_one(
            f"SELECT {', '.join(_TASK_COLUMNS)} FROM tasks WHERE task_id = ?",  # nosec B608
            (task_id,),
            _TASK_COLUMNS,
        )

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_version: int,
    ) -> int:
        """
        Compare-and-set task columns and bump the version.

        Returns the number of affected rows: 0 means the task changed
        since ``expected_version`` was read.
        """
        if any(column not in _TASK_COLUMNS or column == "version" for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        if set_clause:
            set_clause += ", "
        query = (
            "UPDATE tasks SET " + set_clause + "version = version + 1 "  # nosec B608
            "WHERE task_id = ? AND version = ?"
        )
        params: list[object] = [*updates.values(), task_id, expected_version]
        return self._execute(query, params)

    def list_tasks(
        self,
        state: str | None,
        poster_id: str | None,
        worker_id: str | None,
        category: str | None,
        limit: int | None,
        offset: int | None,
        *,
        city: str | None = None,
        near: tuple[float, float, float] | None = None,
    ) -> list[dict[str, Any]]:
        """
        List tasks with optional filters, newest first.

        ``near`` is ``(latitude, longitude, radius_km)``. Tasks without a
        location never match it.
        """
        query = f"SELECT {', '.join(_TASK_COLUMNS)} FROM tasks"  # nosec B608
        clauses: list[str] = []
        params: list[object] = []

        for column, value in (
            ("state", state),
            ("poster_id", poster_id),
            ("assigned_worker_id", worker_id),
            ("category", category),
            ("city", city),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)

        if near is not None:
            clauses.append("haversine_km(?, ?, latitude, longitude) <= ?")
            params.extend(near)

        if clauses:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY created_at DESC, rowid DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
            if offset is not None:
                query += " OFFSET ?"
                params.append(offset)
        elif offset is not None:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)

        return self._fetch_all(query, params, _TASK_COLUMNS)

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_state(self) -> dict[str, int]:
        """Count tasks grouped by state."""
        with self._lock:
            rows = self._db.execute("SELECT state, COUNT(*) FROM tasks GROUP BY state").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def insert_bid(self, bid_data: dict[str, Any]) -> None:
        """Insert a bid."""
        values = tuple(bid_data[column] for column in _BID_COLUMNS)
        query = (
            f"INSERT INTO bids ({', '.join(_BID_COLUMNS)}) "  # nosec B608
            f"VALUES ({_placeholders(_BID_COLUMNS)})"
        )
        try:
            self._execute(query, values)
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                msg = "This worker already has an active bid on this task"
                raise DuplicateBidError(msg) from exc
            raise

    def get_bid(self, bid_id: str, task_id: str) -> dict[str, Any] | None:
        """Fetch a bid by bid_id and task_id."""
        return self._fetch_one(
            f"SELECT {', '.join(_BID_COLUMNS)} FROM bids "  # nosec B608
            "WHERE bid_id = ? AND task_id = ?",
            (bid_id, task_id),
            _BID_COLUMNS,
        )

    def get_bids_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all bids for a task in submission order."""
        return self._fetch_all(
            f"SELECT {', '.join(_BID_COLUMNS)} FROM bids "  # nosec B608
            "WHERE task_id = ? ORDER BY created_at, rowid",
            (task_id,),
            _BID_COLUMNS,
        )

    def get_bids_for_worker(self, worker_id: str) -> list[dict[str, Any]]:
        """Fetch all bids placed by a worker, newest first."""
        return self._fetch_all(
            f"SELECT {', '.join(_BID_COLUMNS)} FROM bids "  # nosec B608
            "WHERE worker_id = ? ORDER BY created_at DESC, rowid DESC",
            (worker_id,),
            _BID_COLUMNS,
        )

    def update_bid_status(
        self,
        bid_id: str,
        status: str,
        updated_at: str,
        *,
        expected_status: str,
    ) -> int:
        """Move a bid to ``status`` only if it is still in ``expected_status``."""
        try:
            return self._execute(
                "UPDATE bids SET status = ?, updated_at = ? WHERE bid_id = ? AND status = ?",
                (status, updated_at, bid_id, expected_status),
            )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateAcceptedBidError("Task already has an accepted bid") from exc
            raise

    def reject_pending_bids(self, task_id: str, updated_at: str) -> int:
        """Reject every bid on the task that is still pending."""
        return self._execute(
            "UPDATE bids SET status = 'rejected', updated_at = ? "
            "WHERE task_id = ? AND status = 'pending'",
            (updated_at, task_id),
        )

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def insert_escrow(self, escrow_data: dict[str, Any]) -> None:
        """Insert an escrow record for a task."""
        values = tuple(escrow_data[column] for column in _ESCROW_COLUMNS)
        query = (
            f"INSERT INTO escrows ({', '.join(_ESCROW_COLUMNS)}) "  # nosec B608
            f"VALUES ({_placeholders(_ESCROW_COLUMNS)})"
        )
        try:
            self._execute(query, values)
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateEscrowError(
                    f"An escrow for task_id={escrow_data['task_id']} already exists"
                ) from exc
            raise

    def get_escrow(self, task_id: str) -> dict[str, Any] | None:
        """Fetch the escrow for a task."""
        return self._fetch_one(
            f"SELECT {', '.join(_ESCROW_COLUMNS)} FROM escrows WHERE task_id = ?",  # nosec B608
            (task_id,),
            _ESCROW_COLUMNS,
        )

    def update_escrow_status(
        self,
        task_id: str,
        status: str,
        resolved_at: str,
        *,
        expected_status: str,
    ) -> int:
        """Move an escrow to ``status`` only if it is still in ``expected_status``."""
        return self._execute(
            "UPDATE escrows SET status = ?, resolved_at = ? WHERE task_id = ? AND status = ?",
            (status, resolved_at, task_id, expected_status),
        )

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    def get_wallet(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a wallet row (without transactions)."""
        return self._fetch_one(
            "SELECT user_id, balance, created_at, updated_at FROM wallets WHERE user_id = ?",
            (user_id,),
            ("user_id", "balance", "created_at", "updated_at"),
        )

    def insert_wallet(self, user_id: str, created_at: str) -> None:
        """Create an empty wallet if it does not exist yet."""
        self._execute(
            "INSERT OR IGNORE INTO wallets (user_id, balance, created_at, updated_at) "
            "VALUES (?, 0, ?, ?)",
            (user_id, created_at, created_at),
        )

    def set_wallet_balance(self, user_id: str, balance: int, updated_at: str) -> int:
        """Overwrite a wallet balance. Only the ledger calls this, next to a transaction."""
        return self._execute(
            "UPDATE wallets SET balance = ?, updated_at = ? WHERE user_id = ?",
            (balance, updated_at, user_id),
        )

    def insert_transaction(self, tx_data: dict[str, Any]) -> None:
        """Append a wallet transaction."""
        values = tuple(tx_data[column] for column in _TRANSACTION_COLUMNS)
        self._execute(
            f"INSERT INTO transactions ({', '.join(_TRANSACTION_COLUMNS)}) "  # nosec B608
            f"VALUES ({_placeholders(_TRANSACTION_COLUMNS)})",
            values,
        )

    def get_transactions(self, user_id: str) -> list[dict[str, Any]]:
        """Fetch a wallet's transactions in the order they were appended."""
        return self._fetch_all(
            f"SELECT {', '.join(_TRANSACTION_COLUMNS)} FROM transactions "  # nosec B608
            "WHERE user_id = ? ORDER BY seq",
            (user_id,),
            _TRANSACTION_COLUMNS,
        )

    # ------------------------------------------------------------------
    # Reviews and worker ratings
    # ------------------------------------------------------------------

    def insert_review(self, review_data: dict[str, Any]) -> None:
        """Insert a review. Per-category ratings are stored as JSON."""
        row = dict(review_data)
        row["per_category_ratings"] = json.dumps(
            review_data["per_category_ratings"], sort_keys=True
        )
        values = tuple(row[column] for column in _REVIEW_COLUMNS)
        try:
            self._execute(
                f"INSERT INTO reviews ({', '.join(_REVIEW_COLUMNS)}) "  # nosec B608
                f"VALUES ({_placeholders(_REVIEW_COLUMNS)})",
                values,
            )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateReviewError(
                    "A review for this task and worker already exists"
                ) from exc
            raise

    @staticmethod
    def _decode_review(review: dict[str, Any]) -> dict[str, Any]:
        review["per_category_ratings"] = json.loads(review["per_category_ratings"])
        return review

    def get_review(self, task_id: str, worker_id: str) -> dict[str, Any] | None:
        """Fetch the review for a task/worker pair."""
        review = self._fetch_one(
            f"SELECT {', '.join(_REVIEW_COLUMNS)} FROM reviews "  # nosec B608
            "WHERE task_id = ? AND worker_id = ?",
            (task_id, worker_id),
            _REVIEW_COLUMNS,
        )
        return None if review is None else self._decode_review(review)

    def get_reviews_for_worker(self, worker_id: str, limit: int | None) -> list[dict[str, Any]]:
        """Fetch a worker's reviews, newest first."""
        query = (
            f"SELECT {', '.join(_REVIEW_COLUMNS)} FROM reviews "  # nosec B608
            "WHERE worker_id = ? ORDER BY created_at DESC, rowid DESC"
        )
        params: list[object] = [worker_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return [self._decode_review(row) for row in self._fetch_all(query, params, _REVIEW_COLUMNS)]

    def get_worker_profile(self, worker_id: str) -> dict[str, Any] | None:
        """Fetch the rating fields of a worker profile."""
        return self._fetch_one(
            "SELECT worker_id, overall_rating, total_reviews, updated_at "
            "FROM worker_profiles WHERE worker_id = ?",
            (worker_id,),
            ("worker_id", "overall_rating", "total_reviews", "updated_at"),
        )

    def upsert_worker_profile(
        self,
        worker_id: str,
        overall_rating: float,
        total_reviews: int,
        updated_at: str,
    ) -> None:
        """Create or overwrite a worker's overall rating fields."""
        self._execute(
            "INSERT INTO worker_profiles (worker_id, overall_rating, total_reviews, updated_at) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(worker_id) DO UPDATE SET overall_rating = excluded.overall_rating, "
            "total_reviews = excluded.total_reviews, updated_at = excluded.updated_at",
            (worker_id, overall_rating, total_reviews, updated_at),
        )

    def get_category_ratings(self, worker_id: str) -> dict[str, dict[str, Any]]:
        """Fetch per-category ratings keyed by category."""
        rows = self._fetch_all(
            "SELECT category, rating, review_count FROM worker_category_ratings "
            "WHERE worker_id = ? ORDER BY category",
            (worker_id,),
            ("category", "rating", "review_count"),
        )
        return {
            str(row["category"]): {"rating": row["rating"], "review_count": row["review_count"]}
            for row in rows
        }

    def upsert_category_rating(
        self,
        worker_id: str,
        category: str,
        rating: float,
        review_count: int,
    ) -> None:
        """Create or overwrite one category rating of a worker."""
        self._execute(
            "INSERT INTO worker_category_ratings (worker_id, category, rating, review_count) "
            "VALUES (?, ?, ?, ?) "
            "ON CONFLICT(worker_id, category) DO UPDATE SET rating = excluded.rating, "
            "review_count = excluded.review_count",
            (worker_id, category, rating, review_count),
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def insert_notification(self, notification_data: dict[str, Any]) -> None:
        """Insert a notification."""
        values = tuple(notification_data[column] for column in _NOTIFICATION_COLUMNS)
        self._execute(
            f"INSERT INTO notifications ({', '.join(_NOTIFICATION_COLUMNS)}) "  # nosec B608
            f"VALUES ({_placeholders(_NOTIFICATION_COLUMNS)})",
            values,
        )

    def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        """Fetch a notification by ID."""
        return self._fetch_one(
            f"SELECT {', '.join(_NOTIFICATION_COLUMNS)} FROM notifications "  # nosec B608
            "WHERE notification_id = ?",
            (notification_id,),
            _NOTIFICATION_COLUMNS,
        )

    def list_notifications(self, recipient_id: str, *, unread_only: bool) -> list[dict[str, Any]]:
        """List a user's notifications, newest first."""
        query = (
            f"SELECT {', '.join(_NOTIFICATION_COLUMNS)} FROM notifications "  # nosec B608
            "WHERE recipient_id = ?"
        )
        if unread_only:
            query += " AND is_read = 0"
        query += " ORDER BY created_at DESC, rowid DESC"
        return self._fetch_all(query, (recipient_id,), _NOTIFICATION_COLUMNS)

    def count_unread_notifications(self, recipient_id: str) -> int:
        """Count a user's unread notifications."""
        with self._lock:
            row = self._db.execute(
                "SELECT COUNT(*) FROM notifications WHERE recipient_id = ? AND is_read = 0",
                (recipient_id,),
            ).fetchone()
        return int(row[0]) if row is not None else 0

    def mark_notification_read(self, notification_id: str) -> int:
        """Set is_read on one notification."""
        return self._execute(
            "UPDATE notifications SET is_read = 1 WHERE notification_id = ?",
            (notification_id,),
        )

    def mark_all_notifications_read(self, recipient_id: str) -> int:
        """Set is_read on every unread notification of a user."""
        return self._execute(
            "UPDATE notifications SET is_read = 1 WHERE recipient_id = ? AND is_read = 0",
            (recipient_id,),
        )

    def delete_notification(self, notification_id: str) -> int:
        """Delete a notification."""
        return self._execute(
            "DELETE FROM notifications WHERE notification_id = ?",
            (notification_id,),
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
