"""Tests for the storage backends"""

from datetime import timedelta

import pytest

from logsoul.storage import MemoryStorage, SQLiteStorage

from conftest import NOW


@pytest.fixture(params=['memory', 'sqlite'])
def store(request, clock, tmp_path):
    if request.param == 'memory':
        backend = MemoryStorage(clock=clock)
    else:
        backend = SQLiteStorage(str(tmp_path / 'db' / 'logsoul.db'), clock=clock)
    yield backend
    backend.close()


def test_domains(store):
    first = store.add_domain('b.example')
    second = store.add_domain('a.example')
    assert store.add_domain('b.example') == first

    assert store.get_domain('b.example').id == first
    assert store.get_domain_by_id(second).name == 'a.example'
    assert store.get_domain('missing.example') is None
    assert store.get_domain_by_id(999) is None
    assert sorted(d.name for d in store.get_domains()) == ['a.example', 'b.example']

    domain = store.get_domain('a.example')
    assert domain.created_at == NOW
    assert domain.health_score == 100


def test_logs_newest_first(store, make_entry):
    domain_id = store.add_domain('example.com')
    store.insert_logs([
        make_entry(domain_id=domain_id, path='/old', timestamp=NOW - timedelta(minutes=30)),
        make_entry(domain_id=domain_id, path='/new', timestamp=NOW),
        make_entry(domain_id=domain_id, path='/mid', timestamp=NOW - timedelta(minutes=10), response_time=12.5),
    ])

    assert [e.path for e in store.get_logs(domain_id)] == ['/new', '/mid', '/old']
    assert [e.path for e in store.get_logs(domain_id, limit=1, offset=1)] == ['/mid']

    recent = store.get_logs_by_time_range(domain_id, NOW - timedelta(minutes=15), NOW)
    assert [e.path for e in recent] == ['/new', '/mid']
    assert recent[1].response_time == 12.5
    assert recent[0].timestamp == NOW


def test_domain_stats(store, make_entry):
    domain_id = store.add_domain('example.com')
    assert store.get_domain_stats(domain_id, '5m') is None

    store.insert_logs([
        make_entry(domain_id=domain_id, ip='10.0.0.1', status=200, response_time=100, size=1000),
        make_entry(domain_id=domain_id, ip='10.0.0.2', status=404, response_time=300, size=500),
        make_entry(domain_id=domain_id, ip='10.0.0.2', status=200, size=500),
        make_entry(domain_id=domain_id, ip='10.0.0.3', status=500, size=0),
        make_entry(domain_id=domain_id, timestamp=NOW - timedelta(hours=2)),
    ])
    stats = store.get_domain_stats(domain_id, '5m')
    assert stats.domain == 'example.com'
    assert stats.requests_per_minute == pytest.approx(0.8)
    assert stats.error_rate == 50.0
    assert stats.avg_response_time == 200
    assert stats.traffic_volume == 2000
    assert stats.unique_ips == 3


def test_alerts(store, clock):
    first_domain = store.add_domain('a.example')
    second_domain = store.add_domain('b.example')
    first = store.add_alert(first_domain, 'error_rate', 'first', 'high')
    clock.advance(minutes=1)
    second = store.add_alert(second_domain, 'critical_errors', 'second', 'critical')

    assert [a.id for a in store.get_alerts()] == [second, first]
    alerts = store.get_alerts(first_domain)
    assert [(a.type, a.message, a.severity) for a in alerts] == [('error_rate', 'first', 'high')]
    assert alerts[0].created_at == NOW
    assert alerts[0].resolved_at is None
    assert len(store.get_alerts(limit=1)) == 1


def test_last_seen_and_cleanup(store, clock, make_entry):
    domain_id = store.add_domain('example.com')
    store.insert_logs([
        make_entry(domain_id=domain_id, timestamp=NOW - timedelta(days=40)),
        make_entry(domain_id=domain_id, timestamp=NOW),
    ])

    clock.advance(minutes=5)
    store.update_domain_last_seen(domain_id)
    assert store.get_domain_by_id(domain_id).last_seen == NOW + timedelta(minutes=5)

    assert store.cleanup_old_logs(30) == 1
    assert len(store.get_logs(domain_id)) == 1
