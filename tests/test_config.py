"""Tests for configuration loading, events and errors"""

from datetime import timedelta

import pytest

from logsoul.config import DEFAULT_CONFIG, format_bytes, load_config, parse_size, parse_time_window
from logsoul.errors import ConfigError, DomainNotFoundError, LogSoulError
from logsoul.events import EventEmitter


@pytest.mark.parametrize('value, expected', [
    ('1GB', 1024 ** 3),
    ('512 kb', 512 * 1024),
    ('10MB', 10 * 1024 ** 2),
    ('100B', 100),
    ('1.5KB', 1536),
    (2048, 2048),
    ('4096', 4096),
])
def test_parse_size(value, expected):
    assert parse_size(value) == expected


@pytest.mark.parametrize('value', ['lots', '1XB', '', 'GB'])
def test_parse_size_rejects_garbage(value):
    with pytest.raises(ConfigError):
        parse_size(value)


@pytest.mark.parametrize('value, expected', [
    ('30s', timedelta(seconds=30)),
    ('5m', timedelta(minutes=5)),
    ('24h', timedelta(hours=24)),
    ('7d', timedelta(days=7)),
])
def test_parse_time_window(value, expected):
    assert parse_time_window(value) == expected


@pytest.mark.parametrize('value', ['1w', 'h', '-5m', '5 minutes'])
def test_parse_time_window_rejects_garbage(value):
    with pytest.raises(ConfigError):
        parse_time_window(value)


@pytest.mark.parametrize('value, expected', [
    (0, '0 Bytes'),
    (512, '512 Bytes'),
    (1536, '1.5 KB'),
    (1024 ** 3, '1 GB'),
])
def test_format_bytes(value, expected):
    assert format_bytes(value) == expected


class TestLoadConfig:

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_file_merged_over_defaults(self, tmp_path):
        path = tmp_path / 'logsoul.yaml'
        path.write_text(
            'monitoring:\n'
            '  max_file_size: 10MB\n'
            'alerts:\n'
            '  webhook:\n'
            '    enabled: true\n'
            '    url: https://hooks.example.com/logsoul\n'
        )
        config = load_config(str(path))
        assert config['monitoring']['max_file_size'] == '10MB'
        assert config['monitoring']['scan_interval'] == '60s'
        assert config['alerts']['webhook']['enabled'] is True
        assert config['alerts']['email']['enabled'] is False
        assert DEFAULT_CONFIG['monitoring']['max_file_size'] == '1GB'

    def test_standard_location(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'configs').mkdir()
        (tmp_path / 'configs' / 'logsoul.yaml').write_text('storage:\n  retention_days: 7\n')
        assert load_config()['storage']['retention_days'] == 7

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('monitoring:\n  max_file_size: huge\n')
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_webhook_needs_url(self, tmp_path):
        path = tmp_path / 'bad.yaml'
        path.write_text('alerts:\n  webhook:\n    enabled: true\n')
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_unparseable_file_falls_back(self, tmp_path, monkeypatch, caplog):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / 'broken.yaml'
        path.write_text('monitoring: [unclosed\n')
        assert load_config(str(path)) == DEFAULT_CONFIG
        assert 'Could not load config' in caplog.text


class TestEventEmitter:

    def test_handlers_run_in_order(self):
        emitter = EventEmitter()
        calls = []
        emitter.on('ping', lambda value: calls.append(('first', value)))
        emitter.on('ping', lambda value: calls.append(('second', value)))
        assert emitter.emit('ping', 1) == 2
        assert calls == [('first', 1), ('second', 1)]

    def test_failing_handler_is_logged(self, caplog):
        emitter = EventEmitter()
        calls = []

        def broken(value):
            raise RuntimeError("handler bug")

        emitter.on('ping', broken)
        emitter.on('ping', calls.append)
        emitter.emit('ping', 'x')
        assert calls == ['x']
        assert 'handler bug' in caplog.text

    def test_off(self):
        emitter = EventEmitter()
        calls = []
        handler = emitter.on('ping', calls.append)
        emitter.off('ping', handler)
        assert emitter.emit('ping', 'x') == 0
        assert calls == []


def test_error_hierarchy():
    error = DomainNotFoundError('nope.example')
    assert isinstance(error, LogSoulError)
    assert isinstance(error, LookupError)
    assert str(error) == 'Domain not found: nope.example'
    assert issubclass(ConfigError, ValueError)
