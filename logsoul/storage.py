"""LogSoul - Storage backends for domains, log entries and alerts"""

import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from .config import parse_time_window
from .models import Alert, Domain, DomainStats, LogEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storage(Protocol):
    """What the pipeline needs from a store"""

    def add_domain(self, name: str) -> int: ...

    def get_domain(self, name: str) -> Optional[Domain]: ...

    def get_domain_by_id(self, domain_id: int) -> Optional[Domain]: ...

    def get_domains(self) -> List[Domain]: ...

    def insert_logs(self, entries: Sequence[LogEntry]) -> None: ...

    def get_logs(self, domain_id: int, limit: int = 1000, offset: int = 0) -> List[LogEntry]: ...

    def get_logs_by_time_range(self, domain_id: int, start: datetime, end: datetime) -> List[LogEntry]: ...

    def get_domain_stats(self, domain_id: int, time_range: str = '1h') -> Optional[DomainStats]: ...

    def add_alert(self, domain_id: int, alert_type: str, message: str, severity: str) -> int: ...

    def get_alerts(self, domain_id: Optional[int] = None, limit: int = 100) -> List[Alert]: ...

    def update_domain_last_seen(self, domain_id: int) -> None: ...


def _window_minutes(time_range: str) -> float:
    return parse_time_window(time_range).total_seconds() / 60


class MemoryStorage:
    """Thread-safe in-process store"""

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self._lock = threading.RLock()
        self._domains: Dict[int, Domain] = {}
        self._logs: List[LogEntry] = []
        self._alerts: List[Alert] = []

    def add_domain(self, name: str) -> int:
        with self._lock:
            existing = self.get_domain(name)
            if existing:
                return existing.id
            domain_id = len(self._domains) + 1
            now = self.clock()
            self._domains[domain_id] = Domain(id=domain_id, name=name, created_at=now, last_seen=now)
            return domain_id

    def get_domain(self, name: str) -> Optional[Domain]:
        with self._lock:
            for domain in self._domains.values():
                if domain.name == name:
                    return domain
        return None

    def get_domain_by_id(self, domain_id: int) -> Optional[Domain]:
        with self._lock:
            return self._domains.get(domain_id)

    def get_domains(self) -> List[Domain]:
        with self._lock:
            return sorted(self._domains.values(), key=lambda d: d.name)

    def insert_logs(self, entries: Sequence[LogEntry]):
        with self._lock:
            self._logs.extend(entries)

    def get_logs(self, domain_id: int, limit: int = 1000, offset: int = 0) -> List[LogEntry]:
        with self._lock:
            logs = [e for e in self._logs if e.domain_id == domain_id]
        logs.sort(key=lambda e: e.timestamp, reverse=True)
        return logs[offset:offset + limit]

    def get_logs_by_time_range(self, domain_id: int, start: datetime, end: datetime) -> List[LogEntry]:
        with self._lock:
            logs = [
                e for e in self._logs
                if e.domain_id == domain_id and start <= e.timestamp <= end
            ]
        logs.sort(key=lambda e: e.timestamp, reverse=True)
        return logs

    def get_domain_stats(self, domain_id: int, time_range: str = '1h') -> Optional[DomainStats]:
        domain = self.get_domain_by_id(domain_id)
        if not domain:
            return None

        end = self.clock()
        logs = self.get_logs_by_time_range(domain_id, end - parse_time_window(time_range), end)
        if not logs:
            return None

        errors = sum(1 for e in logs if e.status >= 400)
        timed = [e.response_time for e in logs if e.response_time is not None]
        return DomainStats(
            domain=domain.name,
            requests_per_minute=len(logs) / _window_minutes(time_range),
            error_rate=errors * 100 / len(logs),
            avg_response_time=sum(timed) / len(timed) if timed else 0.0,
            traffic_volume=sum(e.size for e in logs),
            unique_ips=len({e.ip for e in logs}),
            health_score=domain.health_score,
        )

    def add_alert(self, domain_id: int, alert_type: str, message: str, severity: str) -> int:
        with self._lock:
            alert_id = len(self._alerts) + 1
            self._alerts.append(Alert(
                id=alert_id,
                domain_id=domain_id,
                type=alert_type,
                message=message,
                severity=severity,
                created_at=self.clock(),
            ))
            return alert_id

    def get_alerts(self, domain_id: Optional[int] = None, limit: int = 100) -> List[Alert]:
        with self._lock:
            alerts = [a for a in self._alerts if domain_id is None or a.domain_id == domain_id]
        alerts.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return alerts[:limit]

    def update_domain_last_seen(self, domain_id: int):
        with self._lock:
            domain = self._domains.get(domain_id)
            if domain:
                domain.last_seen = self.clock()

    def cleanup_old_logs(self, retention_days: int) -> int:
        cutoff = self.clock() - timedelta(days=retention_days)
        with self._lock:
            before = len(self._logs)
            self._logs = [e for e in self._logs if e.timestamp >= cutoff]
            return before - len(self._logs)

    def close(self):
        pass


def _ts(value: datetime) -> str:
    """Fixed-width UTC text so that SQL string comparison orders correctly"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f+00:00')


def _dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


SCHEMA = [
    '''
    CREATE TABLE IF NOT EXISTS domains (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        created_at TEXT NOT NULL,
        last_seen TEXT NOT NULL,
        health_score INTEGER DEFAULT 100
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        domain_id INTEGER NOT NULL,
        timestamp TEXT NOT NULL,
        ip TEXT NOT NULL,
        method TEXT,
        path TEXT,
        status INTEGER,
        size INTEGER DEFAULT 0,
        response_time REAL,
        user_agent TEXT,
        referer TEXT,
        raw_line TEXT,
        FOREIGN KEY (domain_id) REFERENCES domains(id)
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS alerts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        domain_id INTEGER NOT NULL,
        type TEXT NOT NULL,
        message TEXT NOT NULL,
        severity TEXT NOT NULL CHECK(severity IN ('low', 'medium', 'high', 'critical')),
        created_at TEXT NOT NULL,
        resolved_at TEXT,
        FOREIGN KEY (domain_id) REFERENCES domains(id)
    )
    ''',
    'CREATE INDEX IF NOT EXISTS idx_logs_domain_timestamp ON logs(domain_id, timestamp)',
    'CREATE INDEX IF NOT EXISTS idx_logs_status ON logs(status)',
    'CREATE INDEX IF NOT EXISTS idx_logs_ip ON logs(ip)',
    'CREATE INDEX IF NOT EXISTS idx_alerts_domain ON alerts(domain_id)',
]

LOG_COLUMNS = 'domain_id, timestamp, ip, method, path, status, size, response_time, user_agent, referer, raw_line'


class SQLiteStorage:
    """SQLite-backed store; one shared connection guarded by a lock"""

    def __init__(self, db_path: str = './logsoul.db', clock: Clock = utcnow):
        self.clock = clock
        if db_path != ':memory:':
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            for statement in SCHEMA:
                self._conn.execute(statement)

    def _query(self, sql: str, params=()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _execute(self, sql: str, params=()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    @staticmethod
    def _domain(row) -> Domain:
        return Domain(
            id=row['id'],
            name=row['name'],
            created_at=_dt(row['created_at']),
            last_seen=_dt(row['last_seen']),
            health_score=row['health_score'],
        )

    @staticmethod
    def _entry(row) -> LogEntry:
        return LogEntry(
            domain_id=row['domain_id'],
            timestamp=_dt(row['timestamp']),
            ip=row['ip'],
            method=row['method'] or '',
            path=row['path'] or '',
            status=row['status'] or 0,
            size=row['size'] or 0,
            response_time=row['response_time'],
            user_agent=row['user_agent'],
            referer=row['referer'],
            raw_line=row['raw_line'] or '',
        )

    def add_domain(self, name: str) -> int:
        now = _ts(self.clock())
        self._execute(
            'INSERT OR IGNORE INTO domains (name, created_at, last_seen) VALUES (?, ?, ?)',
            (name, now, now),
        )
        return self.get_domain(name).id

    def get_domain(self, name: str) -> Optional[Domain]:
        rows = self._query('SELECT * FROM domains WHERE name = ?', (name,))
        return self._domain(rows[0]) if rows else None

    def get_domain_by_id(self, domain_id: int) -> Optional[Domain]:
        rows = self._query('SELECT * FROM domains WHERE id = ?', (domain_id,))
        return self._domain(rows[0]) if rows else None

    def get_domains(self) -> List[Domain]:
        return [self._domain(row) for row in self._query('SELECT * FROM domains ORDER BY name')]

    def insert_logs(self, entries: Sequence[LogEntry]):
        if not entries:
            return
        rows = [
            (e.domain_id, _ts(e.timestamp), e.ip, e.method, e.path, e.status, e.size,
             e.response_time, e.user_agent, e.referer, e.raw_line)
            for e in entries
        ]
        with self._lock, self._conn:
            self._conn.executemany(
                f'INSERT INTO logs ({LOG_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)',
                rows,
            )

    def get_logs(self, domain_id: int, limit: int = 1000, offset: int = 0) -> List[LogEntry]:
        rows = self._query(
            'SELECT * FROM logs WHERE domain_id = ? ORDER BY timestamp DESC LIMIT ? OFFSET ?',
            (domain_id, limit, offset),
        )
        return [self._entry(row) for row in rows]

    def get_logs_by_time_range(self, domain_id: int, start: datetime, end: datetime) -> List[LogEntry]:
        rows = self._query(
            'SELECT * FROM logs WHERE domain_id = ? AND timestamp >= ? AND timestamp <= ? '
            'ORDER BY timestamp DESC',
            (domain_id, _ts(start), _ts(end)),
        )
        return [self._entry(row) for row in rows]

    def get_domain_stats(self, domain_id: int, time_range: str = '1h') -> Optional[DomainStats]:
        end = self.clock()
        start = end - parse_time_window(time_range)
        rows = self._query(
            '''
            SELECT
                d.name AS domain,
                COUNT(*) AS total_requests,
                COUNT(CASE WHEN l.status >= 400 THEN 1 END) AS error_count,
                AVG(l.response_time) AS avg_response_time,
                SUM(l.size) AS total_bandwidth,
                COUNT(DISTINCT l.ip) AS unique_ips,
                d.health_score AS health_score
            FROM logs l
            JOIN domains d ON l.domain_id = d.id
            WHERE l.domain_id = ? AND l.timestamp >= ? AND l.timestamp <= ?
            ''',
            (domain_id, _ts(start), _ts(end)),
        )
        row = rows[0] if rows else None
        if not row or not row['total_requests']:
            return None

        return DomainStats(
            domain=row['domain'],
            requests_per_minute=row['total_requests'] / _window_minutes(time_range),
            error_rate=row['error_count'] * 100 / row['total_requests'],
            avg_response_time=row['avg_response_time'] or 0.0,
            traffic_volume=row['total_bandwidth'] or 0,
            unique_ips=row['unique_ips'] or 0,
            health_score=row['health_score'] if row['health_score'] is not None else 100,
        )

    def add_alert(self, domain_id: int, alert_type: str, message: str, severity: str) -> int:
        cursor = self._execute(
            'INSERT INTO alerts (domain_id, type, message, severity, created_at) VALUES (?, ?, ?, ?, ?)',
            (domain_id, alert_type, message, severity, _ts(self.clock())),
        )
        return cursor.lastrowid

    def get_alerts(self, domain_id: Optional[int] = None, limit: int = 100) -> List[Alert]:
        if domain_id is not None:
            rows = self._query(
                'SELECT * FROM alerts WHERE domain_id = ? ORDER BY created_at DESC, id DESC LIMIT ?',
                (domain_id, limit),
            )
        else:
            rows = self._query('SELECT * FROM alerts ORDER BY created_at DESC, id DESC LIMIT ?', (limit,))
        return [
            Alert(
                id=row['id'],
                domain_id=row['domain_id'],
                type=row['type'],
                message=row['message'],
                severity=row['severity'],
                created_at=_dt(row['created_at']),
                resolved_at=_dt(row['resolved_at']),
            )
            for row in rows
        ]

    def update_domain_last_seen(self, domain_id: int):
        self._execute('UPDATE domains SET last_seen = ? WHERE id = ?', (_ts(self.clock()), domain_id))

    def cleanup_old_logs(self, retention_days: int) -> int:
        cutoff = self.clock() - timedelta(days=retention_days)
        cursor = self._execute('DELETE FROM logs WHERE timestamp < ?', (_ts(cutoff),))
        deleted = cursor.rowcount
        logger.info("Cleaned up %d old log entries", deleted)
        return deleted

    def close(self):
        with self._lock:
            self._conn.close()
