"""Tests for the command line entry point"""

import json
import sys

import main

from conftest import access_line


def run(monkeypatch, *args):
    monkeypatch.setattr(sys, 'argv', ['logsoul', *args])
    return main.main()


def test_domain_for():
    assert main.domain_for('/var/log/nginx/shop.example.com.log') == 'shop.example.com'
    assert main.domain_for('access') == 'access'


def test_analyze_json(monkeypatch, capsys, tmp_path):
    path = tmp_path / 'shop.log'
    path.write_text(
        ''.join(access_line(path='/cart') for _ in range(3))
        + access_line(path='/missing', status=404)
    )
    report_path = tmp_path / 'report.json'

    assert run(monkeypatch, 'analyze', str(path), '-j', '-r', '1h', '-o', str(report_path)) == 0

    report = json.loads(capsys.readouterr().out)
    assert report['domain'] == 'shop'
    assert report['format'] == 'nginx_combined'
    assert report['total_requests'] == 4
    assert report['error_rate'] == 25.0
    assert report['top_pages'][0] == ['/cart', 3]
    assert json.loads(report_path.read_text())['total_requests'] == 4


def test_analyze_missing_file(monkeypatch, tmp_path):
    assert run(monkeypatch, 'analyze', str(tmp_path / 'nope.log'), '-j') == 1
