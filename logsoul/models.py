"""LogSoul - Data models"""

import re
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class LogFormat:
    """A registered log line format"""
    name: str
    pattern: re.Pattern
    fields: Tuple[str, ...]


@dataclass(frozen=True)
class LogEntry:
    """Parsed log entry"""
    domain_id: int
    timestamp: datetime
    ip: str
    method: str
    path: str
    status: int
    size: int
    raw_line: str
    response_time: Optional[float] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass(frozen=True)
class LogFile:
    """A log file handed over by discovery"""
    path: str
    domain: str
    format: LogFormat
    type: str = 'access'
    size: int = 0
    last_modified: Optional[datetime] = None


@dataclass
class Domain:
    id: int
    name: str
    created_at: datetime
    last_seen: datetime
    health_score: int = 100


@dataclass
class DomainStats:
    domain: str
    requests_per_minute: float
    error_rate: float
    avg_response_time: float
    traffic_volume: int
    unique_ips: int
    health_score: int = 100


@dataclass
class Alert:
    id: int
    domain_id: int
    type: str
    message: str
    severity: str
    created_at: datetime
    resolved_at: Optional[datetime] = None


@dataclass
class SecurityThreat:
    """Detected security threat"""
    type: str
    severity: str
    description: str
    count: int
    ips: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)


@dataclass
class PerformanceIssue:
    """Detected performance problem"""
    type: str
    severity: str
    description: str
    value: float
    threshold: float


@dataclass
class TrafficBucket:
    timestamp: datetime
    requests: int


@dataclass
class AnalysisResult:
    """Windowed snapshot of one domain"""
    domain: str
    time_range: str
    total_requests: int = 0
    error_rate: float = 0.0
    avg_response_time: float = 0.0
    top_pages: List[Tuple[str, int]] = field(default_factory=list)
    top_ips: List[Tuple[str, int]] = field(default_factory=list)
    top_user_agents: List[Tuple[str, int]] = field(default_factory=list)
    top_errors: List[Tuple[str, int]] = field(default_factory=list)
    status_code_distribution: Dict[str, int] = field(default_factory=dict)
    traffic_pattern: List[TrafficBucket] = field(default_factory=list)
    security_threats: List[SecurityThreat] = field(default_factory=list)
    performance_issues: List[PerformanceIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['traffic_pattern'] = [
            {'timestamp': b.timestamp.isoformat(), 'requests': b.requests}
            for b in self.traffic_pattern
        ]
        return data


@dataclass
class AlertCondition:
    threshold: float
    time_window: str
    operator: str
    metric: str


@dataclass
class AlertRule:
    """Alert rule; enabled and last_triggered change at runtime"""
    id: str
    name: str
    type: str
    condition: AlertCondition
    severity: str
    cooldown_minutes: int
    enabled: bool = True
    domain: Optional[str] = None
    last_triggered: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AlertRule':
        values = dict(data)
        values['condition'] = AlertCondition(**values['condition'])
        return cls(**values)


@dataclass
class NotificationChannel:
    type: str
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
