"""LogSoul - Configuration loading and value parsing"""

import copy
import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_SEARCH_PATHS = ['./logsoul.yaml', './configs/logsoul.yaml']

DEFAULT_CONFIG = {
    'storage': {
        'db_path': './logsoul.db',
        'retention_days': 30,
    },
    'monitoring': {
        'scan_interval': '60s',
        'batch_size': 1000,
        'max_file_size': '1GB',
        'poll_interval': 1.0,
    },
    'alerts': {
        'email': {
            'enabled': False,
            'smtp_server': '',
            'smtp_port': 587,
            'from': '',
            'to': [],
            'username': '',
            'password': '',
        },
        'webhook': {
            'enabled': False,
            'url': '',
            'timeout': 10,
        },
    },
}

SIZE_UNITS = {'': 1, 'b': 1, 'kb': 1024, 'mb': 1024 ** 2, 'gb': 1024 ** 3, 'tb': 1024 ** 4}
WINDOW_UNITS = {'s': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}

_SIZE_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$')
_WINDOW_RE = re.compile(r'^(\d+)([smhd])$')


def parse_size(value) -> int:
    """Convert a human size such as "1GB" or "512 kb" to bytes"""
    if isinstance(value, (int, float)):
        return int(value)

    match = _SIZE_RE.match(str(value))
    if not match:
        raise ConfigError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    unit = unit.lower()
    if unit not in SIZE_UNITS:
        raise ConfigError(f"Unknown size unit in {value!r}")
    return int(float(number) * SIZE_UNITS[unit])


def parse_time_window(value: str) -> timedelta:
    """Convert a window such as "5m", "24h" or "7d" to a timedelta"""
    match = _WINDOW_RE.match(str(value).strip())
    if not match:
        raise ConfigError(f"Invalid time window: {value!r}")

    amount, unit = match.groups()
    return timedelta(**{WINDOW_UNITS[unit]: int(amount)})


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return '0 Bytes'
    sizes = ['Bytes', 'KB', 'MB', 'GB', 'TB']
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {sizes[i]}"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    monitoring = config['monitoring']
    parse_size(monitoring['max_file_size'])
    parse_time_window(monitoring['scan_interval'])

    if float(monitoring['poll_interval']) <= 0:
        raise ConfigError("monitoring.poll_interval must be positive")

    webhook = config['alerts']['webhook']
    if webhook.get('enabled') and not webhook.get('url'):
        raise ConfigError("alerts.webhook.url is required when the webhook channel is enabled")
    return config


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load YAML configuration merged over the defaults.

    The explicit path is tried first, then the standard locations. A file
    that cannot be read or parsed is skipped with a warning; values that
    parse but are invalid raise ConfigError.
    """
    candidates = [config_path] if config_path else []
    candidates.extend(CONFIG_SEARCH_PATHS)

    for candidate in candidates:
        path = Path(candidate)
        if not path.is_file():
            continue
        try:
            with open(path, 'r', encoding='utf-8') as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Could not load config from %s: %s", path, e)
            continue

        if not isinstance(loaded, dict):
            logger.warning("Ignoring config %s: top level is not a mapping", path)
            continue

        logger.info("Loaded config from %s", path)
        return validate_config(_merge(DEFAULT_CONFIG, loaded))

    logger.info("Using default configuration")
    return copy.deepcopy(DEFAULT_CONFIG)
