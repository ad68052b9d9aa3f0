"""LogSoul - Constants and patterns"""

VERSION = "1.0.0"

# Log format patterns, in detection order. Each entry maps to the semantic
# field assigned to every capture group.
LOG_FORMATS = {
    'nginx_combined': {
        'pattern': r'^(\S+) \S+ \S+ \[([^\]]+)\] "(\S+) ([^" ]*)(?: [^"]*)?" (\d{3}) (\d+|-) "([^"]*)" "([^"]*)".*$',
        'fields': ('ip', 'timestamp', 'method', 'path', 'status', 'size', 'referer', 'user_agent'),
    },
    'apache_combined': {
        'pattern': r'^(\S+) \S+ \S+ \[([^\]]+)\] "(\S+) ([^" ]*)(?: [^"]*)?" (\d{3}) (\d+|-) "([^"]*)" "([^"]*)"$',
        'fields': ('ip', 'timestamp', 'method', 'path', 'status', 'size', 'referer', 'user_agent'),
    },
    'apache_common': {
        'pattern': r'^(\S+) \S+ \S+ \[([^\]]+)\] "(\S+) ([^" ]*)(?: [^"]*)?" (\d{3}) (\d+|-)$',
        'fields': ('ip', 'timestamp', 'method', 'path', 'status', 'size'),
    },
    'nginx_error': {
        'pattern': r'^(\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}) \[(\w+)\] (\d+)#(\d+): (.+)$',
        'fields': ('timestamp', 'level', 'pid', 'tid', 'message'),
    },
    'json': {
        'pattern': r'^\{.+\}$',
        'fields': ('json',),
    },
}

JSON_FIELD = 'json'
JSON_FORMAT = 'json'
DEFAULT_FORMAT = 'nginx_combined'

SEMANTIC_FIELDS = frozenset([
    'ip', 'timestamp', 'method', 'path', 'status', 'size',
    'response_time', 'user_agent', 'referer',
])

# Tried in order by the parser; the first layout that parses wins.
TIMESTAMP_LAYOUTS = [
    '%d/%b/%Y:%H:%M:%S %z',
    '%Y/%m/%d %H:%M:%S',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f%z',
    '%Y-%m-%dT%H:%M:%S%z',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%dT%H:%M:%S',
]

# Alternative JSON keys per field, most specific first
JSON_KEYS = {
    'timestamp': ('timestamp', 'time', '@timestamp'),
    'ip': ('ip', 'remote_addr', 'client_ip'),
    'method': ('method', 'request_method'),
    'path': ('path', 'request_uri', 'url'),
    'status': ('status', 'response_code', 'code'),
    'size': ('size', 'bytes_sent', 'response_size'),
    'response_time': ('response_time', 'request_time', 'duration'),
    'user_agent': ('user_agent', 'useragent'),
    'referer': ('referer', 'referrer'),
}

# Threat detection patterns, matched against the request path
THREAT_PATTERNS = {
    'sql_injection': [
        r"(\bSELECT\b|\bUNION\b|\bINSERT\b|\bDELETE\b|\bDROP\b|\bUPDATE\b).*(\bFROM\b|\bWHERE\b)",
        r"(union.*select|select.*from|insert.*into|delete.*from)",
    ],
    'xss': [
        r"<script",
        r"javascript:",
        r"on(load|error|click|mouseover|focus)\s*=",
        r"alert\(",
        r"document\.cookie",
    ],
    'path_traversal': [
        r"\.\./",
        r"\.\.\\",
        r"%2e%2e%2f",
        r"%2e%2e%5c",
    ],
}

# Decoded variants are only checked for these threat types
DECODED_THREAT_TYPES = ('sql_injection', 'xss')

SCANNER_USER_AGENTS = r"nikto|sqlmap|nmap|metasploit|burpsuite|havij|acunetix|w3af|dirb|gobuster|wfuzz|masscan|nessus"
SHORT_USER_AGENT = r"^[a-zA-Z]{1,5}$"
MIN_USER_AGENT_LENGTH = 10

BRUTE_FORCE_STATUSES = (401, 403)
BRUTE_FORCE_THRESHOLD = 20

ERROR_RATE_THRESHOLD = 5
SLOW_RESPONSE_THRESHOLD = 1000
TRAFFIC_SPIKE_FACTOR = 3
TRAFFIC_SPIKE_CRITICAL_FACTOR = 10

# Health score deductions per severity
THREAT_PENALTIES = {'critical': 20, 'high': 15, 'medium': 10, 'low': 5}
ISSUE_PENALTIES = {'critical': 15, 'high': 10, 'medium': 5, 'low': 2}

SEVERITIES = ('low', 'medium', 'high', 'critical')
SEVERITY_COLORS = {'critical': 'red bold', 'high': 'red', 'medium': 'yellow', 'low': 'blue'}

# Traffic bucket size (seconds) for the largest window (seconds) it applies to
BUCKET_SIZES = [
    (15 * 60, 60),
    (60 * 60, 5 * 60),
    (24 * 60 * 60, 60 * 60),
    (7 * 24 * 60 * 60, 6 * 60 * 60),
]
DEFAULT_BUCKET_SIZE = 24 * 60 * 60

# Built-in alert rules
DEFAULT_RULES = [
    {
        'id': 'high_error_rate',
        'name': 'High Error Rate',
        'type': 'error_rate',
        'condition': {'threshold': 5, 'time_window': '5m', 'operator': '>', 'metric': 'error_rate_percent'},
        'severity': 'high',
        'cooldown_minutes': 15,
    },
    {
        'id': 'slow_response',
        'name': 'Slow Response Time',
        'type': 'response_time',
        'condition': {'threshold': 3000, 'time_window': '5m', 'operator': '>', 'metric': 'avg_response_time_ms'},
        'severity': 'medium',
        'cooldown_minutes': 10,
    },
    {
        'id': 'traffic_spike',
        'name': 'Traffic Spike',
        'type': 'traffic_spike',
        'condition': {'threshold': 300, 'time_window': '5m', 'operator': '>', 'metric': 'requests_per_minute'},
        'severity': 'medium',
        'cooldown_minutes': 30,
    },
    {
        'id': 'critical_errors',
        'name': 'Critical Error Rate',
        'type': 'error_rate',
        'condition': {'threshold': 20, 'time_window': '5m', 'operator': '>', 'metric': 'error_rate_percent'},
        'severity': 'critical',
        'cooldown_minutes': 5,
    },
    {
        'id': 'security_attacks',
        'name': 'Security Attacks Detected',
        'type': 'security_threat',
        'condition': {'threshold': 10, 'time_window': '5m', 'operator': '>', 'metric': 'security_events'},
        'severity': 'high',
        'cooldown_minutes': 20,
    },
]

# Immediate path: server errors within the lookback that raise critical_errors
IMMEDIATE_ERROR_STATUS = 500
IMMEDIATE_ERROR_THRESHOLD = 10
IMMEDIATE_LOOKBACK_MINUTES = 5
