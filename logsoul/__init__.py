"""LogSoul - log ingestion, analysis and alerting"""

from .patterns import VERSION, LOG_FORMATS, THREAT_PATTERNS
from .models import (
    Alert, AlertCondition, AlertRule, AnalysisResult, Domain, DomainStats, LogEntry,
    LogFile, LogFormat, NotificationChannel, PerformanceIssue, SecurityThreat, TrafficBucket,
)
from .errors import ConfigError, DomainNotFoundError, LogSoulError, NotificationError
from .config import load_config
from .parser import LogParser
from .monitor import FileMonitor
from .analyzer import LogAnalyzer
from .alerts import AlertManager
from .storage import MemoryStorage, SQLiteStorage, Storage
from .app import LogSoulApp
from .output import print_report

__all__ = [
    'VERSION', 'LOG_FORMATS', 'THREAT_PATTERNS',
    'Alert', 'AlertCondition', 'AlertRule', 'AnalysisResult', 'Domain', 'DomainStats',
    'LogEntry', 'LogFile', 'LogFormat', 'NotificationChannel', 'PerformanceIssue',
    'SecurityThreat', 'TrafficBucket',
    'ConfigError', 'DomainNotFoundError', 'LogSoulError', 'NotificationError',
    'load_config', 'LogParser', 'FileMonitor', 'LogAnalyzer', 'AlertManager',
    'MemoryStorage', 'SQLiteStorage', 'Storage', 'LogSoulApp', 'print_report',
]
