#!/usr/bin/env python3
"""LogSoul - Entry point"""

import argparse
import json
import logging
import os
import sys
import time

from logsoul import VERSION, LogAnalyzer, LogFile, LogParser, LogSoulApp, MemoryStorage, SQLiteStorage, print_report
from logsoul.config import load_config, parse_time_window
from logsoul.errors import LogSoulError
from logsoul.output import print_entry
from logsoul.utils import console, setup_logging

logger = logging.getLogger("logsoul")


def domain_for(path: str) -> str:
    name = os.path.basename(path)
    for suffix in ('.log', '.access', '.error'):
        if name.endswith(suffix):
            name = name[:-len(suffix)]
    return name or 'default'


def run_analyze(args) -> int:
    parser = LogParser()
    if args.format == 'auto':
        log_format = parser.detect_file_format(args.logfile)
    else:
        log_format = parser.get_format(args.format)
    domain = args.domain or domain_for(args.logfile)

    entries = list(parser.stream_file(args.logfile, domain_id=1, log_format=log_format))
    if entries:
        # Replayed logs are windowed relative to their newest entry, not the wall clock
        end = max(e.timestamp for e in entries)
        start = end - parse_time_window(args.range)
        entries = [e for e in entries if e.timestamp >= start]

    analyzer = LogAnalyzer(MemoryStorage())
    analysis = analyzer.analyze_entries(domain, args.range, entries)
    health_score = analyzer.score_analysis(analysis)

    report = analysis.to_dict()
    report['health_score'] = health_score
    report['format'] = log_format.name

    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        console.print(f"[dim]Format: {log_format.name}[/]")
        print_report(analysis, console, health_score)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        if not args.json:
            console.print(f"\n[green]Report saved to:[/] {args.output}")
    return 0


def run_watch(args) -> int:
    config = load_config(args.config)
    db_path = args.db or None
    storage = SQLiteStorage(db_path) if db_path else MemoryStorage()

    app = LogSoulApp(config, storage, console=console)
    app.monitor.on('log-entry', lambda entry: print_entry(entry, console))

    log_files = []
    for path in args.logfiles:
        if not os.path.isfile(path):
            logger.error("Not a file: %s", path)
            continue
        log_files.append(LogFile(
            path=path,
            domain=args.domain or domain_for(path),
            format=app.parser.detect_file_format(path),
            size=os.path.getsize(path),
        ))
    if not log_files:
        console.print("[red]Nothing to watch[/]")
        return 1

    app.start(log_files)
    console.print(f"[green]Watching {len(log_files)} file(s). Press Ctrl+C to stop.[/]")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping...[/]")
    finally:
        app.stop()
        storage.close()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="LogSoul - Web server log analysis and alerting",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"LogSoul v{VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze a log file once")
    analyze.add_argument("logfile", help="Log file to analyze")
    analyze.add_argument("-d", "--domain", help="Domain name (default: derived from the file name)")
    analyze.add_argument("-f", "--format", default='auto',
                         choices=['auto'] + LogParser().available_formats(), help="Log format")
    analyze.add_argument("-r", "--range", default='24h', help="Time window, e.g. 15m, 1h, 7d")
    analyze.add_argument("-o", "--output", help="Output file (JSON)")
    analyze.add_argument("-j", "--json", action="store_true", help="JSON output only")

    watch = subparsers.add_parser("watch", help="Tail log files and raise alerts")
    watch.add_argument("logfiles", nargs="+", help="Log files to watch")
    watch.add_argument("-d", "--domain", help="Domain name for all files")
    watch.add_argument("-c", "--config", help="YAML config file")
    watch.add_argument("--db", help="SQLite database path (default: in-memory store)")

    args = parser.parse_args()
    setup_logging(verbose=args.verbose)

    try:
        if args.command == 'analyze':
            return run_analyze(args)
        return run_watch(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1
    except LogSoulError as e:
        console.print(f"[red]Error:[/] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
