"""Shared fixtures"""

import time
from datetime import datetime, timedelta, timezone

import pytest

from logsoul.models import LogEntry, LogFile
from logsoul.parser import LogParser
from logsoul.storage import MemoryStorage

NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
DOMAIN = 'example.com'

NGINX_LINE = (
    '192.168.1.10 - - [10/Mar/2024:11:59:30 +0000] "GET /index.html HTTP/1.1" 200 1024 '
    '"https://example.com/" "Mozilla/5.0 (X11; Linux x86_64)"'
)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def access_line(ip='10.0.0.1', path='/', status=200, ts='10/Mar/2024:11:59:30 +0000', agent='Mozilla/5.0 (X11; Linux x86_64)'):
    return f'{ip} - - [{ts}] "GET {path} HTTP/1.1" {status} 512 "-" "{agent}"\n'


def set_timezone(monkeypatch, name):
    monkeypatch.setenv('TZ', name)
    time.tzset()


@pytest.fixture(autouse=True)
def utc_local_time(monkeypatch):
    """Run every test with the host clock on UTC"""
    set_timezone(monkeypatch, 'UTC')
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    store = MemoryStorage(clock=clock)
    yield store
    store.close()


@pytest.fixture
def domain_id(storage):
    return storage.add_domain(DOMAIN)


@pytest.fixture
def parser():
    return LogParser()


@pytest.fixture
def log_path(tmp_path):
    path = tmp_path / 'access.log'
    path.write_text('')
    return str(path)


@pytest.fixture
def log_file(log_path, parser):
    return LogFile(path=log_path, domain=DOMAIN, format=parser.get_format('nginx_combined'))


@pytest.fixture
def make_entry(clock):
    def _make(domain_id=1, timestamp=None, ip='10.0.0.1', path='/', status=200,
              response_time=None, user_agent='Mozilla/5.0 (X11; Linux x86_64)', method='GET', size=512):
        return LogEntry(
            domain_id=domain_id,
            timestamp=timestamp or clock(),
            ip=ip,
            method=method,
            path=path,
            status=status,
            size=size,
            raw_line=f'{ip} {method} {path} {status}',
            response_time=response_time,
            user_agent=user_agent,
        )
    return _make
