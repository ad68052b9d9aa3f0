"""LogSoul - Rule-based alerting and notification channels"""

import logging
import operator
import smtplib
import threading
from datetime import datetime, timedelta, timezone
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from rich.console import Console

from .analyzer import LogAnalyzer
from .config import DEFAULT_CONFIG
from .errors import NotificationError
from .events import EventEmitter
from .models import Alert, AlertRule, LogEntry, NotificationChannel
from .output import print_alert
from .patterns import (
    DEFAULT_RULES, IMMEDIATE_ERROR_STATUS, IMMEDIATE_ERROR_THRESHOLD, IMMEDIATE_LOOKBACK_MINUTES,
)
from .storage import Storage

logger = logging.getLogger(__name__)

OPERATORS = {
    '>': operator.gt,
    '<': operator.lt,
    '=': operator.eq,
    '>=': operator.ge,
    '<=': operator.le,
}

# Which DomainStats attribute each stats-based rule type compares
STATS_METRICS = {
    'error_rate': 'error_rate',
    'response_time': 'avg_response_time',
    'traffic_spike': 'requests_per_minute',
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compare_values(value: float, threshold: float, op: str) -> bool:
    compare = OPERATORS.get(op)
    if compare is None:
        logger.warning("Unknown rule operator %r", op)
        return False
    return compare(value, threshold)


class AlertManager(EventEmitter):
    """Evaluates alert rules per domain and dispatches notifications.

    A background thread sweeps every domain once per ``check_interval``
    seconds. Ingested entries also go through ``process_log_entry``, which
    raises ``critical_errors`` as soon as a burst of server errors shows up.
    Emits ``alert`` with a dict holding domain, rule, message and alert.
    """

    def __init__(self, storage: Storage, analyzer: LogAnalyzer, config: Optional[Dict[str, Any]] = None,
                 check_interval: float = 60.0, clock: Callable[[], datetime] = utcnow,
                 console: Optional[Console] = None):
        super().__init__()
        self.storage = storage
        self.analyzer = analyzer
        self.config = config or DEFAULT_CONFIG
        self.check_interval = check_interval
        self.clock = clock
        self.console = console or Console()

        self._rules: Dict[str, AlertRule] = {}
        self._rules_lock = threading.Lock()
        self._channels: List[NotificationChannel] = []
        self._locks: Dict[Any, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._immediate_fired: Dict[int, datetime] = {}

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self._senders = {
            'console': self._send_console_notification,
            'email': self._send_email_notification,
            'webhook': self._send_webhook_notification,
        }

        for rule in DEFAULT_RULES:
            self.add_rule(rule)
        self._initialize_channels()

    def _initialize_channels(self):
        self._channels.append(NotificationChannel(type='console'))

        alerts = self.config.get('alerts', {})
        email = alerts.get('email', {})
        if email.get('enabled'):
            self._channels.append(NotificationChannel(type='email', config=dict(email)))

        webhook = alerts.get('webhook', {})
        if webhook.get('enabled'):
            self._channels.append(NotificationChannel(type='webhook', config=dict(webhook)))

    def _lock_for(self, key) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # Rule management

    def add_rule(self, rule: Union[AlertRule, Dict[str, Any]]) -> AlertRule:
        if isinstance(rule, dict):
            rule = AlertRule.from_dict(rule)
        with self._rules_lock:
            self._rules[rule.id] = rule
        logger.info("Added alert rule: %s", rule.name)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        with self._rules_lock:
            removed = self._rules.pop(rule_id, None)
        if removed:
            logger.info("Removed alert rule: %s", rule_id)
        return removed is not None

    def _set_enabled(self, rule_id: str, enabled: bool) -> bool:
        with self._rules_lock:
            rule = self._rules.get(rule_id)
            if rule:
                rule.enabled = enabled
        if rule:
            logger.info("%s alert rule: %s", "Enabled" if enabled else "Disabled", rule.name)
        return rule is not None

    def enable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, True)

    def disable_rule(self, rule_id: str) -> bool:
        return self._set_enabled(rule_id, False)

    def get_rules(self) -> List[AlertRule]:
        with self._rules_lock:
            return list(self._rules.values())

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._rules_lock:
            return self._rules.get(rule_id)

    def get_channels(self) -> List[NotificationChannel]:
        return list(self._channels)

    def add_channel(self, channel: NotificationChannel):
        self._channels.append(channel)

    def remove_channel(self, channel_type: str):
        self._channels = [ch for ch in self._channels if ch.type != channel_type]

    # Periodic sweep

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Alert manager is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="alert-sweep", daemon=True)
        self._thread.start()
        logger.info("Alert manager started (every %ss)", self.check_interval)

    def stop(self):
        if self._thread is None:
            return
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        logger.info("Alert manager stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self):
        while not self._stop_event.wait(self.check_interval):
            try:
                self.check_alerts()
            except Exception:
                logger.exception("Error checking alerts")

    def check_alerts(self) -> List[Alert]:
        fired = []
        for domain in self.storage.get_domains():
            if self._stop_event.is_set():
                break
            try:
                fired.extend(self.check_domain_alerts(domain.name))
            except Exception:
                logger.exception("Error checking alerts for %s", domain.name)
        return fired

    def is_in_cooldown(self, rule: AlertRule, now: Optional[datetime] = None) -> bool:
        if rule.last_triggered is None:
            return False
        now = now or self.clock()
        return now - rule.last_triggered < timedelta(minutes=rule.cooldown_minutes)

    def check_domain_alerts(self, domain_name: str) -> List[Alert]:
        fired = []
        for rule in self.get_rules():
            if not rule.enabled:
                continue
            if rule.domain and rule.domain != domain_name:
                continue
            if self.is_in_cooldown(rule):
                continue

            with self._lock_for(('rule', rule.id)):
                if self.is_in_cooldown(rule):
                    continue
                try:
                    should_alert = self.evaluate_rule(domain_name, rule)
                except Exception:
                    logger.exception("Error evaluating rule %s for %s", rule.id, domain_name)
                    continue
                if should_alert:
                    alert = self.trigger_alert(domain_name, rule)
                    if alert:
                        fired.append(alert)
        return fired

    def evaluate_rule(self, domain_name: str, rule: AlertRule) -> bool:
        condition = rule.condition

        if rule.type == 'security_threat':
            analysis = self.analyzer.analyze_domain(domain_name, condition.time_window)
            value = len(analysis.security_threats)
            return compare_values(value, condition.threshold, condition.operator)

        attribute = STATS_METRICS.get(rule.type)
        if attribute is None:
            logger.warning("Unknown rule type %r in rule %s", rule.type, rule.id)
            return False

        domain = self.storage.get_domain(domain_name)
        if not domain:
            return False
        stats = self.storage.get_domain_stats(domain.id, condition.time_window)
        if not stats:
            return False
        return compare_values(getattr(stats, attribute), condition.threshold, condition.operator)

    def trigger_alert(self, domain_name: str, rule: AlertRule) -> Optional[Alert]:
        domain = self.storage.get_domain(domain_name)
        if not domain:
            return None

        now = self.clock()
        message = f"Alert: {rule.name} triggered for {domain_name}"
        alert_id = self.storage.add_alert(domain.id, rule.type, message, rule.severity)
        if rule.last_triggered is None or now > rule.last_triggered:
            rule.last_triggered = now

        alert = Alert(
            id=alert_id,
            domain_id=domain.id,
            type=rule.type,
            message=message,
            severity=rule.severity,
            created_at=now,
        )
        self.send_notifications(alert, domain_name)
        logger.info("Alert triggered: %s", message)
        self.emit('alert', {'domain': domain_name, 'rule': rule, 'message': message, 'alert': alert})
        return alert

    # Immediate path

    def process_log_entry(self, entry: LogEntry) -> Optional[Alert]:
        if entry.status >= IMMEDIATE_ERROR_STATUS:
            return self.check_immediate_alerts(entry)
        return None

    def check_immediate_alerts(self, entry: LogEntry) -> Optional[Alert]:
        """Raise critical_errors when the last minutes hold a burst of 5xx.

        One alert is raised per burst: after firing, a domain stays quiet
        for the length of the lookback window.
        """
        domain = self.storage.get_domain_by_id(entry.domain_id)
        if not domain:
            return None

        lookback = timedelta(minutes=IMMEDIATE_LOOKBACK_MINUTES)
        with self._lock_for(('immediate', domain.id)):
            now = self.clock()
            last = self._immediate_fired.get(domain.id)
            if last is not None and now - last < lookback:
                return None

            recent = self.storage.get_logs_by_time_range(domain.id, now - lookback, now)
            server_errors = sum(1 for log in recent if log.status >= IMMEDIATE_ERROR_STATUS)
            if server_errors <= IMMEDIATE_ERROR_THRESHOLD:
                return None

            message = f"{server_errors} server errors in the last {IMMEDIATE_LOOKBACK_MINUTES} minutes"
            alert_id = self.storage.add_alert(domain.id, 'critical_errors', message, 'critical')
            self._immediate_fired[domain.id] = now

        alert = Alert(
            id=alert_id,
            domain_id=domain.id,
            type='critical_errors',
            message=message,
            severity='critical',
            created_at=now,
        )
        self.send_notifications(alert, domain.name)
        logger.warning("Immediate alert for %s: %s", domain.name, message)
        self.emit('alert', {'domain': domain.name, 'rule': None, 'message': message, 'alert': alert})
        return alert

    # Notifications

    def send_notifications(self, alert: Alert, domain_name: Optional[str] = None) -> int:
        """Deliver to every enabled channel; returns how many succeeded"""
        delivered = 0
        for channel in self.get_channels():
            if not channel.enabled:
                continue
            sender = self._senders.get(channel.type)
            if sender is None:
                logger.warning("Unknown notification channel %r", channel.type)
                continue
            try:
                sender(channel.config, alert, domain_name)
                delivered += 1
            except Exception as e:
                logger.error("Failed to send notification via %s: %s", channel.type, e)
        return delivered

    def _send_console_notification(self, config: Dict[str, Any], alert: Alert, domain_name: Optional[str]):
        print_alert(alert, self.console, domain_name)

    def _send_email_notification(self, config: Dict[str, Any], alert: Alert, domain_name: Optional[str]):
        recipients = config.get('to') or []
        if isinstance(recipients, str):
            recipients = [recipients]
        if not config.get('smtp_server') or not recipients:
            raise NotificationError('email', "smtp_server and recipients are required")

        msg = MIMEText(
            f"Domain: {domain_name or alert.domain_id}\n"
            f"Severity: {alert.severity}\n"
            f"Type: {alert.type}\n"
            f"Time: {alert.created_at:%Y-%m-%d %H:%M:%S %Z}\n\n"
            f"{alert.message}\n",
            'plain',
            'utf-8',
        )
        sender = config.get('from') or config.get('username') or 'logsoul@localhost'
        msg['From'] = sender
        msg['To'] = ", ".join(recipients)
        msg['Subject'] = f"[LogSoul {alert.severity.upper()}] {alert.message}"

        try:
            with smtplib.SMTP(config['smtp_server'], int(config.get('smtp_port', 587)), timeout=10) as server:
                if config.get('username'):
                    server.starttls()
                    server.login(config['username'], config.get('password', ''))
                server.sendmail(sender, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError('email', e) from e

    def _send_webhook_notification(self, config: Dict[str, Any], alert: Alert, domain_name: Optional[str]):
        payload = {
            'domain': domain_name,
            'domain_id': alert.domain_id,
            'type': alert.type,
            'message': alert.message,
            'severity': alert.severity,
            'created_at': alert.created_at.isoformat(),
        }
        try:
            response = requests.post(config['url'], json=payload, timeout=config.get('timeout', 10))
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError('webhook', e) from e
