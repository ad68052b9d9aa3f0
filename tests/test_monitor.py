"""Tests for the tailing engine"""

import os
import time

import pytest

from logsoul.config import DEFAULT_CONFIG, _merge
from logsoul.models import LogFile
from watchdog.events import DirModifiedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from logsoul.monitor import FileMonitor, LogFileEventHandler

from conftest import DOMAIN, access_line


def append(path, *lines):
    with open(path, 'a') as f:
        f.writelines(lines)


@pytest.fixture
def monitor(parser, storage, domain_id):
    mon = FileMonitor(parser, storage, poll_interval=0.05)
    yield mon
    mon.stop()


class TestWatching:

    def test_watch_baselines_to_current_size(self, monitor, log_file):
        append(log_file.path, access_line(), access_line())
        monitor.watch_file(log_file)
        assert monitor.get_offset(log_file.path) == os.path.getsize(log_file.path)
        assert monitor.handle_file_change(log_file) == []

    def test_watch_twice_is_noop(self, monitor, log_file, caplog):
        added = []
        monitor.on('file-added', added.append)
        monitor.watch_file(log_file)
        monitor.watch_file(log_file)
        assert added == [log_file.path]
        assert monitor.get_watched_files() == [log_file.path]
        assert 'Already watching' in caplog.text

    def test_watch_missing_file_emits_error(self, monitor, parser, tmp_path):
        errors = []
        monitor.on('error', lambda exc, path: errors.append(path))
        missing = str(tmp_path / 'gone.log')
        monitor.watch_file(LogFile(path=missing, domain=DOMAIN, format=parser.default_format))
        assert errors == [missing]
        assert not monitor.is_watching(missing)

    def test_unwatch_discards_offset(self, monitor, log_file):
        monitor.watch_file(log_file)
        monitor.unwatch_file(log_file.path)
        assert not monitor.is_watching(log_file.path)
        assert monitor.get_offset(log_file.path) is None
        assert log_file.path not in monitor._path_locks

    def test_path_locks_do_not_accumulate(self, monitor, parser, tmp_path):
        for i in range(20):
            path = tmp_path / f'rotated-{i}.log'
            path.write_text('')
            monitor.watch_file(LogFile(path=str(path), domain=DOMAIN, format=parser.default_format))
            monitor.unwatch_file(str(path))
        assert monitor._path_locks == {}

    def test_watch_relative_path(self, monitor, parser, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'relative.log').write_text('')
        monitor.watch_file(LogFile(path='relative.log', domain=DOMAIN, format=parser.default_format))
        assert monitor.is_watching(str(tmp_path / 'relative.log'))
        assert monitor.get_log_file(str(tmp_path / 'relative.log')).path == 'relative.log'

    def test_watch_and_unwatch_domain(self, monitor, parser, tmp_path):
        files = []
        for name in ('a.log', 'b.log'):
            path = tmp_path / name
            path.write_text('')
            files.append(LogFile(path=str(path), domain=DOMAIN, format=parser.default_format))

        monitor.watch_domain(DOMAIN, files)
        assert monitor.get_stats()['watched_files'] == 2
        monitor.unwatch_domain(DOMAIN, files)
        assert monitor.get_stats()['watched_files'] == 0

    def test_stop_clears_state(self, monitor, log_file):
        monitor.watch_file(log_file)
        monitor.start()
        monitor.stop()
        assert monitor._path_locks == {}
        assert monitor.get_stats() == {'watched_files': 0, 'file_positions': {}, 'is_running': False}


class TestFileChanges:

    def test_appended_lines_become_entries(self, monitor, log_file, storage, domain_id):
        append(log_file.path, access_line(path='/old'))
        monitor.watch_file(log_file)

        seen = []
        monitor.on('log-entry', seen.append)
        append(log_file.path, *(access_line(path=f'/new/{i}') for i in range(5)))

        entries = monitor.handle_file_change(log_file)
        assert [e.path for e in entries] == [f'/new/{i}' for i in range(5)]
        assert seen == entries
        assert monitor.get_offset(log_file.path) == os.path.getsize(log_file.path)
        assert len(storage.get_logs(domain_id)) == 5

    def test_no_growth_is_noop(self, monitor, log_file):
        append(log_file.path, access_line())
        monitor.watch_file(log_file)
        before = monitor.get_offset(log_file.path)
        assert monitor.handle_file_change(log_file) == []
        assert monitor.get_offset(log_file.path) == before

    def test_rotation_resets_offset_without_reading(self, monitor, log_file, storage, domain_id):
        append(log_file.path, *(access_line() for _ in range(3)))
        monitor.watch_file(log_file)

        with open(log_file.path, 'w') as f:
            f.write(access_line(path='/after-rotate'))

        assert monitor.handle_file_change(log_file) == []
        assert monitor.get_offset(log_file.path) == 0
        assert storage.get_logs(domain_id) == []

        entries = monitor.handle_file_change(log_file)
        assert [e.path for e in entries] == ['/after-rotate']

    def test_oversized_change_is_skipped(self, parser, storage, domain_id, log_file):
        config = _merge(DEFAULT_CONFIG, {'monitoring': {'max_file_size': '100B'}})
        monitor = FileMonitor(parser, storage, config)
        monitor.watch_file(log_file)

        append(log_file.path, *(access_line() for _ in range(5)))
        assert monitor.handle_file_change(log_file) == []
        assert monitor.get_offset(log_file.path) == os.path.getsize(log_file.path)
        assert storage.get_logs(domain_id) == []

    def test_unparsed_lines_still_advance_offset(self, monitor, log_file, storage, domain_id):
        monitor.watch_file(log_file)
        append(log_file.path, 'not a log line\n', '\n', access_line(path='/ok'))

        entries = monitor.handle_file_change(log_file)
        assert [e.path for e in entries] == ['/ok']
        assert monitor.get_offset(log_file.path) == os.path.getsize(log_file.path)

    def test_unknown_domain_leaves_offset(self, monitor, parser, log_path):
        log_file = LogFile(path=log_path, domain='unknown.example', format=parser.default_format)
        monitor.watch_file(log_file)
        append(log_path, access_line())

        assert monitor.handle_file_change(log_file) == []
        assert monitor.get_offset(log_path) == 0

    def test_unwatched_file_is_ignored(self, monitor, log_file):
        append(log_file.path, access_line())
        assert monitor.handle_file_change(log_file) == []

    def test_change_notification_ingests_appends(self, monitor, log_file):
        seen = []
        monitor.on('log-entry', seen.append)
        monitor.watch_file(log_file)
        monitor.start()

        append(log_file.path, access_line(path='/live'))
        deadline = time.time() + 5
        while not seen and time.time() < deadline:
            time.sleep(0.02)

        assert [e.path for e in seen] == ['/live']

    def test_delete_notification_unwatches_file(self, monitor, log_file):
        removed = []
        monitor.on('file-removed', removed.append)
        monitor.watch_file(log_file)
        monitor.start()

        os.remove(log_file.path)
        deadline = time.time() + 5
        while not removed and time.time() < deadline:
            time.sleep(0.02)

        assert removed == [log_file.path]
        assert not monitor.is_watching(log_file.path)


class TestEventHandler:

    def test_modified_event_reads_new_lines(self, monitor, log_file):
        monitor.watch_file(log_file)
        append(log_file.path, access_line(path='/notified'))
        LogFileEventHandler(monitor).on_modified(FileModifiedEvent(log_file.path))
        assert monitor.get_offset(log_file.path) == os.path.getsize(log_file.path)

    def test_events_for_other_files_are_dropped(self, monitor, log_file, tmp_path):
        monitor.watch_file(log_file)
        handler = LogFileEventHandler(monitor)
        handler.on_modified(FileModifiedEvent(str(tmp_path / 'other.log')))
        handler.on_modified(DirModifiedEvent(str(tmp_path)))
        handler.on_deleted(FileDeletedEvent(str(tmp_path / 'other.log')))
        assert monitor.is_watching(log_file.path)

    def test_moved_event_unwatches_file(self, monitor, log_file, tmp_path):
        removed = []
        monitor.on('file-removed', removed.append)
        monitor.watch_file(log_file)
        LogFileEventHandler(monitor).on_moved(FileMovedEvent(log_file.path, str(tmp_path / 'access.log.1')))
        assert removed == [log_file.path]
        assert not monitor.is_watching(log_file.path)
        assert log_file.path not in monitor._path_locks


def test_tail_file(monitor, log_path):
    append(log_path, *(access_line(path=f'/{i}') for i in range(5)), '\n')
    tail = monitor.tail_file(log_path, lines=2)
    assert len(tail) == 2
    assert "GET /3 " in tail[0]
    assert "GET /4 " in tail[1]
