"""
Repository pattern for data access.

Handles the append-only usage ledger, budget alerts, and the habit/mood
records read by the analytics layer.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import Habit, HabitCompletion, MoodEntry, UsageAlert, UsageRecord

_USAGE_COLUMNS = """
    timestamp, user_id, endpoint, input_tokens, output_tokens,
    total_tokens, cost, latency_ms, success, cached, error_code, request_id
"""


def _row_to_usage_record(row) -> UsageRecord:
    return UsageRecord(
        timestamp=datetime.fromisoformat(row[0]),
        user_id=row[1],
        endpoint=row[2],
        input_tokens=row[3],
        output_tokens=row[4],
        cost=row[6],
        latency_ms=row[7],
        success=bool(row[8]),
        cached=bool(row[9]),
        error_code=row[10],
        request_id=row[11],
    )


class UsageRepository:
    """Read access to the usage ledger.

    Aggregations back the quota guard's budget ceilings, the CLI report and
    the per-user usage endpoint.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_recent_records(
        self,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 1000
    ) -> List[UsageRecord]:
        """Get recent usage records with optional filtering.

        Args:
            user_id: Optional filter for a single user
            endpoint: Optional filter for specific endpoint
            days: Optional number of days to look back
            limit: Maximum number of records to return

        Returns:
            List of usage records ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_USAGE_COLUMNS} FROM usage_record"
            params = []
            conditions = []

            if user_id:
                conditions.append("user_id = ?")
                params.append(user_id)
            if endpoint:
                conditions.append("endpoint = ?")
                params.append(endpoint)
            if days is not None:
                cutoff = (datetime.now() - timedelta(days=days)).isoformat()
                conditions.append("timestamp >= ?")
                params.append(cutoff)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_usage_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_usage_stats(
        self,
        since: datetime,
        user_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        until: Optional[datetime] = None
    ) -> Dict[str, float]:
        """Get aggregate usage statistics from `since` onwards.

        Args:
            since: Inclusive lower bound on record timestamps
            user_id: Optional filter for a single user
            endpoint: Optional filter for specific endpoint
            until: Optional exclusive upper bound on record timestamps

        Returns:
            Dictionary containing usage statistics
        """
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT
                    COUNT(*) as total_requests,
                    SUM(success) as successful_requests,
                    SUM(cached) as cached_requests,
                    SUM(cost) as total_cost,
                    SUM(total_tokens) as total_tokens,
                    AVG(latency_ms) as avg_latency_ms,
                    COUNT(DISTINCT user_id) as unique_users
                FROM usage_record
                WHERE timestamp >= ?
            """
            params = [since.isoformat()]

            if until:
                query += " AND timestamp < ?"
                params.append(until.isoformat())
            if user_id:
                query += " AND user_id = ?"
                params.append(user_id)
            if endpoint:
                query += " AND endpoint = ?"
                params.append(endpoint)

            row = conn.execute(query, params).fetchone()
            total_requests = row[0] or 0
            successful = row[1] or 0

            return {
                "total_requests": total_requests,
                "successful_requests": successful,
                "cached_requests": row[2] or 0,
                "total_cost": float(row[3] or 0),
                "total_tokens": row[4] or 0,
                "avg_latency_ms": float(row[5] or 0),
                "unique_users": row[6] or 0,
                "success_rate": (successful / total_requests * 100) if total_requests else 0.0,
            }
        finally:
            conn.close()

    def get_cost_since(self, since: datetime) -> float:
        """Total system-wide spend from `since` onwards."""
        return self.get_usage_stats(since)["total_cost"]

    def get_endpoint_breakdown(
        self,
        since: datetime,
        until: Optional[datetime] = None
    ) -> List[Dict[str, float]]:
        """Per-endpoint request counts and cost, most expensive first."""
        query = """
            SELECT endpoint, COUNT(*), SUM(cost), SUM(cached), AVG(latency_ms)
            FROM usage_record
            WHERE timestamp >= ?
        """
        params = [since.isoformat()]
        if until:
            query += " AND timestamp < ?"
            params.append(until.isoformat())
        query += " GROUP BY endpoint ORDER BY SUM(cost) DESC, COUNT(*) DESC"

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(query, params)
            return [
                {
                    "endpoint": row[0],
                    "requests": row[1],
                    "cost": float(row[2] or 0),
                    "cached_requests": row[3] or 0,
                    "avg_latency_ms": float(row[4] or 0),
                }
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()


class HabitRepository:
    """Habit, completion and mood storage scoped by user id."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def add_habit(self, user_id: str, habit: Habit) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR REPLACE INTO habit
                (id, user_id, name, description, tags, color, frequency,
                 target_days, interval_days, start_date, is_archived, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                habit.id,
                user_id,
                habit.name,
                habit.description,
                json.dumps(habit.tags),
                habit.color,
                habit.frequency,
                json.dumps(habit.target_days),
                habit.interval_days,
                habit.start_date,
                int(habit.is_archived),
                (habit.created_at or datetime.now()).isoformat()
            ))
            conn.commit()
        finally:
            conn.close()

    def add_completion(self, user_id: str, completion: HabitCompletion) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR REPLACE INTO habit_completion
                (id, user_id, habit_id, date, completed, notes)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                completion.id,
                user_id,
                completion.habit_id,
                completion.date,
                int(completion.completed),
                completion.notes
            ))
            conn.commit()
        finally:
            conn.close()

    def add_mood_entry(self, user_id: str, entry: MoodEntry) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT OR REPLACE INTO mood_entry
                (id, user_id, date, mood, energy, stress, sleep, notes, tags)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.id,
                user_id,
                entry.date,
                entry.mood,
                entry.energy,
                entry.stress,
                entry.sleep,
                entry.notes,
                json.dumps(entry.tags)
            ))
            conn.commit()
        finally:
            conn.close()

    def get_user_habits(self, user_id: str) -> List[Habit]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT id, name, description, tags, color, frequency, target_days,
                       interval_days, start_date, is_archived, created_at
                FROM habit WHERE user_id = ?
                ORDER BY created_at DESC
            """, (user_id,))
            return [
                Habit(
                    id=row[0],
                    name=row[1],
                    description=row[2],
                    tags=json.loads(row[3] or "[]"),
                    color=row[4],
                    frequency=row[5],
                    target_days=json.loads(row[6] or "[]"),
                    interval_days=row[7],
                    start_date=row[8],
                    is_archived=bool(row[9]),
                    created_at=datetime.fromisoformat(row[10]) if row[10] else None
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def get_completions(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        habit_id: Optional[str] = None
    ) -> List[HabitCompletion]:
        """Fetch completions, newest date first. Date bounds are inclusive."""
        conn = get_connection(self.db_path)
        try:
            query = "SELECT id, habit_id, date, completed, notes FROM habit_completion WHERE user_id = ?"
            params = [user_id]
            if habit_id:
                query += " AND habit_id = ?"
                params.append(habit_id)
            if start_date:
                query += " AND date >= ?"
                params.append(start_date)
            if end_date:
                query += " AND date <= ?"
                params.append(end_date)
            query += " ORDER BY date DESC"

            cursor = conn.execute(query, params)
            return [
                HabitCompletion(
                    id=row[0],
                    habit_id=row[1],
                    date=row[2],
                    completed=bool(row[3]),
                    notes=row[4]
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def get_mood_entries(self, user_id: str, start_date: str, end_date: str) -> List[MoodEntry]:
        """Fetch mood entries in the inclusive date range, oldest first."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT id, date, mood, energy, stress, sleep, notes, tags
                FROM mood_entry
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date ASC
            """, (user_id, start_date, end_date))
            return [
                MoodEntry(
                    id=row[0],
                    date=row[1],
                    mood=row[2],
                    energy=row[3],
                    stress=row[4],
                    sleep=row[5],
                    notes=row[6],
                    tags=json.loads(row[7] or "[]")
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()


# Global repository instance
_default_repository: Optional[UsageRepository] = None


def get_repository(db_path: str = DEFAULT_DB_PATH) -> UsageRepository:
    """Get a repository instance.

    This function provides a singleton instance of the UsageRepository,
    rebuilt when a different database path is requested.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of UsageRepository
    """
    global _default_repository
    if _default_repository is None or _default_repository.db_path != db_path:
        _default_repository = UsageRepository(db_path)
    return _default_repository


# Alert state columns added after the first schema; older ledgers gain them on init.
_ALERT_STATE_COLUMNS = {
    "acknowledged": "INTEGER NOT NULL DEFAULT 0",
    "dismissed_at": "TEXT",
    "dismissed_by": "TEXT",
}


def _add_missing_columns(conn, table: str, columns: Dict[str, str]) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
    for name, definition in columns.items():
        if name not in existing:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {definition}")


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    `usage_record` is an append-only ledger: no UPDATE or DELETE is ever
    performed on it. Alert rows are never removed; acknowledging or
    dismissing an alert only sets its flags.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                user_id TEXT NOT NULL,
                endpoint TEXT NOT NULL,
                input_tokens INTEGER NOT NULL,
                output_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                cost REAL NOT NULL,
                latency_ms INTEGER NOT NULL,
                success INTEGER NOT NULL,
                cached INTEGER NOT NULL DEFAULT 0,
                error_code TEXT,
                request_id TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_usage_record_user_ts
                ON usage_record (user_id, timestamp);

            CREATE TABLE IF NOT EXISTS usage_alert (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                alert_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                threshold_percent REAL NOT NULL,
                current_percent REAL NOT NULL,
                amount REAL NOT NULL,
                budget REAL NOT NULL,
                message TEXT NOT NULL,
                user_id TEXT,
                endpoint TEXT,
                acknowledged INTEGER NOT NULL DEFAULT 0,
                dismissed_at TEXT,
                dismissed_by TEXT
            );

            CREATE TABLE IF NOT EXISTS habit (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                tags TEXT,
                color TEXT,
                frequency TEXT NOT NULL,
                target_days TEXT,
                interval_days INTEGER,
                start_date TEXT,
                is_archived INTEGER NOT NULL DEFAULT 0,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS habit_completion (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                habit_id TEXT NOT NULL,
                date TEXT NOT NULL,
                completed INTEGER NOT NULL,
                notes TEXT
            );

            CREATE TABLE IF NOT EXISTS mood_entry (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                mood INTEGER NOT NULL,
                energy INTEGER NOT NULL,
                stress INTEGER NOT NULL,
                sleep INTEGER NOT NULL,
                notes TEXT,
                tags TEXT
            );
        """)
        _add_missing_columns(conn, "usage_alert", _ALERT_STATE_COLUMNS)
        conn.commit()
    finally:
        conn.close()


def insert_usage_record(record: UsageRecord, db_path: str = DEFAULT_DB_PATH) -> int:
    """Append a single usage record to the ledger.

    Args:
        record: The usage record to store
        db_path: Path to SQLite database file

    Returns:
        Row id of the inserted record
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(f"""
            INSERT INTO usage_record ({_USAGE_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.timestamp.isoformat(),
            record.user_id,
            record.endpoint,
            record.input_tokens,
            record.output_tokens,
            record.total_tokens,
            record.cost,
            record.latency_ms,
            int(record.success),
            int(record.cached),
            record.error_code,
            record.request_id
        ))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def fetch_recent_usage_records(
    user_id: Optional[str] = None,
    endpoint: Optional[str] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageRecord]:
    """Fetch recent usage records, newest first.

    Args:
        user_id: Optional filter for a single user
        endpoint: Optional filter for specific endpoint
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of usage records ordered by timestamp (newest first)
    """
    return UsageRepository(db_path).get_recent_records(
        user_id=user_id,
        endpoint=endpoint,
        limit=limit
    )


_ALERT_COLUMNS = """
    id, created_at, alert_type, severity, threshold_percent, current_percent,
    amount, budget, message, user_id, endpoint, acknowledged
"""


def _row_to_usage_alert(row) -> UsageAlert:
    return UsageAlert(
        id=row[0],
        created_at=datetime.fromisoformat(row[1]),
        alert_type=row[2],
        severity=row[3],
        threshold_percent=row[4],
        current_percent=row[5],
        amount=row[6],
        budget=row[7],
        message=row[8],
        user_id=row[9],
        endpoint=row[10],
        acknowledged=bool(row[11]),
    )


def insert_usage_alert(alert: UsageAlert, db_path: str = DEFAULT_DB_PATH) -> int:
    """Store an alert and return its row id."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            INSERT INTO usage_alert
            (created_at, alert_type, severity, threshold_percent, current_percent,
             amount, budget, message, user_id, endpoint, acknowledged)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            alert.created_at.isoformat(),
            alert.alert_type,
            alert.severity,
            alert.threshold_percent,
            alert.current_percent,
            alert.amount,
            alert.budget,
            alert.message,
            alert.user_id,
            alert.endpoint,
            int(alert.acknowledged)
        ))
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def fetch_usage_alerts(
    limit: int = 50,
    db_path: str = DEFAULT_DB_PATH,
    user_id: Optional[str] = None,
    acknowledged: Optional[bool] = None
) -> List[UsageAlert]:
    """Fetch the most recent alerts, newest first.

    Dismissed alerts are never returned.

    Args:
        limit: Maximum number of alerts to return
        db_path: Path to SQLite database file
        user_id: Only alerts raised for this user
        acknowledged: Only acknowledged (True) or unacknowledged (False) alerts
    """
    query = f"SELECT {_ALERT_COLUMNS} FROM usage_alert WHERE dismissed_at IS NULL"
    params: list = []
    if user_id is not None:
        query += " AND user_id = ?"
        params.append(user_id)
    if acknowledged is not None:
        query += " AND acknowledged = ?"
        params.append(int(acknowledged))
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(limit)

    conn = get_connection(db_path)
    try:
        return [_row_to_usage_alert(row) for row in conn.execute(query, params).fetchall()]
    finally:
        conn.close()


def get_usage_alert(alert_id: int, db_path: str = DEFAULT_DB_PATH) -> Optional[UsageAlert]:
    """Fetch one alert by id, or None if it does not exist or was dismissed."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            f"SELECT {_ALERT_COLUMNS} FROM usage_alert WHERE id = ? AND dismissed_at IS NULL",
            (alert_id,),
        ).fetchone()
        return _row_to_usage_alert(row) if row else None
    finally:
        conn.close()


def set_alert_acknowledged(alert_id: int, acknowledged: bool = True, db_path: str = DEFAULT_DB_PATH) -> bool:
    """Set an alert's acknowledged flag.

    Returns:
        False if no live alert has this id
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            "UPDATE usage_alert SET acknowledged = ? WHERE id = ? AND dismissed_at IS NULL",
            (int(acknowledged), alert_id),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def dismiss_usage_alert(
    alert_id: int,
    dismissed_by: str,
    dismissed_at: Optional[datetime] = None,
    db_path: str = DEFAULT_DB_PATH
) -> bool:
    """Hide an alert from every listing; the row itself is kept.

    Dismissing also acknowledges the alert.

    Returns:
        False if no live alert has this id
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            UPDATE usage_alert
            SET acknowledged = 1, dismissed_at = ?, dismissed_by = ?
            WHERE id = ? AND dismissed_at IS NULL
        """, ((dismissed_at or datetime.now()).isoformat(), dismissed_by, alert_id))
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()
