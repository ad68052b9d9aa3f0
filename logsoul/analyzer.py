"""LogSoul - Core analysis engine"""

import logging
import math
import re
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote_plus

from .config import parse_time_window
from .errors import DomainNotFoundError
from .models import AnalysisResult, LogEntry, PerformanceIssue, SecurityThreat, TrafficBucket
from .patterns import (
    BRUTE_FORCE_STATUSES, BRUTE_FORCE_THRESHOLD, BUCKET_SIZES, DECODED_THREAT_TYPES,
    DEFAULT_BUCKET_SIZE, ERROR_RATE_THRESHOLD, ISSUE_PENALTIES, MIN_USER_AGENT_LENGTH,
    SCANNER_USER_AGENTS, SHORT_USER_AGENT, SLOW_RESPONSE_THRESHOLD, THREAT_PATTERNS,
    THREAT_PENALTIES, TRAFFIC_SPIKE_CRITICAL_FACTOR, TRAFFIC_SPIKE_FACTOR,
)
from .storage import Storage

logger = logging.getLogger(__name__)

TopList = List[Tuple[str, int]]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def bucket_size_for(time_range: str) -> int:
    """Traffic bucket width in seconds; wider windows get coarser buckets"""
    window = parse_time_window(time_range).total_seconds()
    for max_window, size in BUCKET_SIZES:
        if window <= max_window:
            return size
    return DEFAULT_BUCKET_SIZE


def score_health(error_rate: float, avg_response_time: float,
                 threats: Sequence[SecurityThreat], issues: Sequence[PerformanceIssue]) -> int:
    score = 100.0
    score -= error_rate * 2

    if avg_response_time > SLOW_RESPONSE_THRESHOLD:
        score -= min(30, (avg_response_time - SLOW_RESPONSE_THRESHOLD) / 100)

    for threat in threats:
        score -= THREAT_PENALTIES.get(threat.severity, 0)
    for issue in issues:
        score -= ISSUE_PENALTIES.get(issue.severity, 0)

    return int(math.floor(max(0.0, min(100.0, score)) + 0.5))


def _tiered(value: float, tiers: Sequence[Tuple[float, str]], default: str) -> str:
    for limit, severity in tiers:
        if value > limit:
            return severity
    return default


def _unique(values) -> List[str]:
    return list(dict.fromkeys(values))


class LogAnalyzer:
    """Windowed aggregates, threat heuristics and health scoring per domain"""

    def __init__(self, storage: Storage, top_n: int = 10, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.top_n = top_n
        self.clock = clock
        self.threat_patterns = self._compile_patterns()
        self.scanner_ua = re.compile(SCANNER_USER_AGENTS, re.IGNORECASE)
        self.short_ua = re.compile(SHORT_USER_AGENT)

    def _compile_patterns(self):
        return {
            threat_type: [re.compile(p, re.IGNORECASE) for p in patterns]
            for threat_type, patterns in THREAT_PATTERNS.items()
        }

    def analyze_domain(self, domain_name: str, time_range: str = '1h') -> AnalysisResult:
        domain = self.storage.get_domain(domain_name)
        if not domain:
            raise DomainNotFoundError(domain_name)

        end = self.clock()
        start = end - parse_time_window(time_range)
        logs = self.storage.get_logs_by_time_range(domain.id, start, end)
        return self.analyze_entries(domain_name, time_range, logs)

    def analyze_entries(self, domain_name: str, time_range: str, logs: Sequence[LogEntry]) -> AnalysisResult:
        # Stores return newest first; the top lists break ties by first appearance
        logs = sorted(logs, key=lambda e: e.timestamp)
        if not logs:
            return AnalysisResult(domain=domain_name, time_range=time_range)

        return AnalysisResult(
            domain=domain_name,
            time_range=time_range,
            total_requests=len(logs),
            error_rate=self.calculate_error_rate(logs),
            avg_response_time=self.calculate_avg_response_time(logs),
            top_pages=self.get_top_pages(logs),
            top_ips=self.get_top_ips(logs),
            top_user_agents=self.get_top_user_agents(logs),
            top_errors=self.get_top_errors(logs),
            status_code_distribution=self.get_status_code_distribution(logs),
            traffic_pattern=self.get_traffic_pattern(logs, time_range),
            security_threats=self.detect_security_threats(logs),
            performance_issues=self.detect_performance_issues(logs, time_range),
        )

    def calculate_error_rate(self, logs: Sequence[LogEntry]) -> float:
        if not logs:
            return 0.0
        errors = sum(1 for log in logs if log.status >= 400)
        return errors * 100 / len(logs)

    def calculate_avg_response_time(self, logs: Sequence[LogEntry]) -> float:
        timed = [log.response_time for log in logs if log.response_time is not None]
        if not timed:
            return 0.0
        return sum(timed) / len(timed)

    def _top(self, values) -> TopList:
        return Counter(values).most_common(self.top_n)

    def get_top_pages(self, logs: Sequence[LogEntry]) -> TopList:
        return self._top(log.path or '/' for log in logs)

    def get_top_ips(self, logs: Sequence[LogEntry]) -> TopList:
        return self._top(log.ip for log in logs)

    def get_top_user_agents(self, logs: Sequence[LogEntry]) -> TopList:
        return self._top(log.user_agent for log in logs if log.user_agent)

    def get_top_errors(self, logs: Sequence[LogEntry]) -> TopList:
        return self._top(log.path or '/' for log in logs if log.status >= 400)

    def get_status_code_distribution(self, logs: Sequence[LogEntry]) -> Dict[str, int]:
        distribution: Dict[str, int] = {}
        for log in logs:
            key = f"{log.status // 100}xx"
            distribution[key] = distribution.get(key, 0) + 1
        return distribution

    def get_traffic_pattern(self, logs: Sequence[LogEntry], time_range: str) -> List[TrafficBucket]:
        bucket_size = bucket_size_for(time_range)
        buckets: Dict[int, int] = defaultdict(int)

        for log in logs:
            seconds = int((log.timestamp - EPOCH).total_seconds())
            buckets[seconds // bucket_size * bucket_size] += 1

        return [
            TrafficBucket(timestamp=EPOCH + timedelta(seconds=start), requests=count)
            for start, count in sorted(buckets.items())
        ]

    def _matches(self, threat_type: str, path: str) -> bool:
        patterns = self.threat_patterns[threat_type]
        candidates = [path]
        if threat_type in DECODED_THREAT_TYPES:
            decoded = unquote_plus(path)
            if decoded != path:
                candidates.append(decoded)
        return any(p.search(text) for p in patterns for text in candidates)

    def _is_suspicious_ua(self, user_agent: Optional[str]) -> bool:
        if not user_agent:
            return False
        return bool(
            self.scanner_ua.search(user_agent)
            or len(user_agent) < MIN_USER_AGENT_LENGTH
            or self.short_ua.match(user_agent)
        )

    def _path_threat(self, threat_type: str, hits: List[LogEntry], severity: str, label: str) -> SecurityThreat:
        return SecurityThreat(
            type=threat_type,
            severity=severity,
            description=f"Detected {len(hits)} potential {label} attempts",
            count=len(hits),
            ips=_unique(log.ip for log in hits),
            paths=_unique(log.path or '' for log in hits),
        )

    def detect_security_threats(self, logs: Sequence[LogEntry]) -> List[SecurityThreat]:
        threats = []

        sql_hits = [log for log in logs if self._matches('sql_injection', log.path or '')]
        if sql_hits:
            severity = _tiered(len(sql_hits), [(10, 'critical'), (5, 'high')], 'medium')
            threats.append(self._path_threat('sql_injection', sql_hits, severity, 'SQL injection'))

        xss_hits = [log for log in logs if self._matches('xss', log.path or '')]
        if xss_hits:
            severity = 'high' if len(xss_hits) > 5 else 'medium'
            threats.append(self._path_threat('xss', xss_hits, severity, 'XSS'))

        traversal_hits = [log for log in logs if self._matches('path_traversal', log.path or '')]
        if traversal_hits:
            severity = 'high' if len(traversal_hits) > 5 else 'medium'
            threats.append(self._path_threat('path_traversal', traversal_hits, severity, 'path traversal'))

        auth_failures = Counter(log.ip for log in logs if log.status in BRUTE_FORCE_STATUSES)
        for ip, count in auth_failures.items():
            if count > BRUTE_FORCE_THRESHOLD:
                threats.append(SecurityThreat(
                    type='brute_force',
                    severity=_tiered(count, [(100, 'critical'), (50, 'high')], 'medium'),
                    description=f"{count} authentication failures from {ip}",
                    count=count,
                    ips=[ip],
                    paths=[],
                ))

        suspicious = [log for log in logs if self._is_suspicious_ua(log.user_agent)]
        if suspicious:
            threats.append(SecurityThreat(
                type='suspicious_ua',
                severity='medium',
                description=f"Detected {len(suspicious)} requests with suspicious user agents",
                count=len(suspicious),
                ips=_unique(log.ip for log in suspicious),
                paths=_unique(log.path or '' for log in suspicious),
            ))

        return threats

    def detect_performance_issues(self, logs: Sequence[LogEntry], time_range: str) -> List[PerformanceIssue]:
        issues = []

        error_rate = self.calculate_error_rate(logs)
        if error_rate > ERROR_RATE_THRESHOLD:
            issues.append(PerformanceIssue(
                type='high_error_rate',
                severity=_tiered(error_rate, [(15, 'critical'), (10, 'high')], 'medium'),
                description=f"Error rate is {error_rate:.2f}%",
                value=error_rate,
                threshold=ERROR_RATE_THRESHOLD,
            ))

        avg_response_time = self.calculate_avg_response_time(logs)
        if avg_response_time > SLOW_RESPONSE_THRESHOLD:
            issues.append(PerformanceIssue(
                type='slow_response',
                severity=_tiered(avg_response_time, [(5000, 'critical'), (3000, 'high')], 'medium'),
                description=f"Average response time is {avg_response_time:.0f}ms",
                value=avg_response_time,
                threshold=SLOW_RESPONSE_THRESHOLD,
            ))

        pattern = self.get_traffic_pattern(logs, time_range)
        if len(pattern) > 1:
            avg_requests = sum(b.requests for b in pattern) / len(pattern)
            max_requests = max(b.requests for b in pattern)
            if max_requests > avg_requests * TRAFFIC_SPIKE_FACTOR:
                critical = max_requests > avg_requests * TRAFFIC_SPIKE_CRITICAL_FACTOR
                issues.append(PerformanceIssue(
                    type='traffic_spike',
                    severity='critical' if critical else 'high',
                    description=(
                        f"Traffic spike detected: {max_requests} requests "
                        f"({max_requests / avg_requests:.1f}x normal)"
                    ),
                    value=max_requests,
                    threshold=avg_requests * TRAFFIC_SPIKE_FACTOR,
                ))

        return issues

    def score_analysis(self, analysis: AnalysisResult) -> int:
        return score_health(
            analysis.error_rate,
            analysis.avg_response_time,
            analysis.security_threats,
            analysis.performance_issues,
        )

    def calculate_health_score(self, domain_name: str, time_range: str = '24h') -> int:
        return self.score_analysis(self.analyze_domain(domain_name, time_range))

    def generate_alerts(self, domain_name: str, time_range: str = '1h') -> List[int]:
        """Store one alert per threat and per issue found in the window"""
        analysis = self.analyze_domain(domain_name, time_range)
        domain = self.storage.get_domain(domain_name)
        if not domain:
            raise DomainNotFoundError(domain_name)

        alert_ids = []
        for threat in analysis.security_threats:
            alert_ids.append(self.storage.add_alert(
                domain.id, f"security_{threat.type}", threat.description, threat.severity))
        for issue in analysis.performance_issues:
            alert_ids.append(self.storage.add_alert(
                domain.id, f"performance_{issue.type}", issue.description, issue.severity))

        logger.info("Generated %d alerts for %s", len(alert_ids), domain_name)
        return alert_ids
