"""LogSoul - Log format registry and line parser"""

import codecs
import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Union

from .models import LogEntry, LogFormat
from .patterns import (
    DEFAULT_FORMAT, JSON_FIELD, JSON_FORMAT, JSON_KEYS, LOG_FORMATS,
    SEMANTIC_FIELDS, TIMESTAMP_LAYOUTS,
)

logger = logging.getLogger(__name__)

SAMPLE_LINES = 10
CHUNK_SIZE = 64 * 1024


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str(value) -> Optional[str]:
    return None if value is None else str(value)


def read_lines(file_path: str, start: int = 0, end: Optional[int] = None) -> Iterator[str]:
    """Lazily yield the lines stored in the byte range [start, end).

    Reading stops at ``end`` (or end of file). A trailing line without a
    newline is yielded last if it holds anything besides whitespace.
    """
    decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
    remaining = None if end is None else max(0, end - start)
    buffer = ''

    with open(file_path, 'rb') as f:
        f.seek(start)
        while remaining is None or remaining > 0:
            size = CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining)
            chunk = f.read(size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)

            buffer += decoder.decode(chunk)
            lines = buffer.split('\n')
            buffer = lines.pop()
            for line in lines:
                yield line.rstrip('\r')

    buffer += decoder.decode(b'', final=True)
    if buffer.strip():
        yield buffer.rstrip('\r')


class LogParser:
    """Registry of log formats and the line parser that uses them"""

    def __init__(self):
        self.formats: Dict[str, LogFormat] = {}
        for name, data in LOG_FORMATS.items():
            self.add_custom_format(name, data['pattern'], data['fields'])

    def add_custom_format(self, name: str, pattern: Union[str, re.Pattern], fields: Sequence[str]) -> LogFormat:
        if not fields:
            raise ValueError(f"Format {name!r} needs at least one field")
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        log_format = LogFormat(name=name, pattern=compiled, fields=tuple(fields))
        self.formats[name] = log_format
        logger.debug("Registered log format %s", name)
        return log_format

    def get_format(self, name: str) -> LogFormat:
        return self.formats[name]

    def available_formats(self) -> List[str]:
        return list(self.formats)

    @property
    def default_format(self) -> LogFormat:
        return self.formats[DEFAULT_FORMAT]

    def detect_format(self, sample_lines: Iterable[str]) -> LogFormat:
        """Pick the format of the first recognisable line in the sample.

        A bare JSON object selects the JSON format right away; otherwise the
        pattern formats are tried in registration order. Up to
        SAMPLE_LINES non-blank lines are examined before falling back to
        the default format.
        """
        examined = 0
        for line in sample_lines:
            line = line.strip()
            if not line:
                continue
            if examined >= SAMPLE_LINES:
                break
            examined += 1

            if line.startswith('{') and line.endswith('}'):
                return self.formats[JSON_FORMAT]

            for log_format in self.formats.values():
                if log_format.fields == (JSON_FIELD,):
                    continue
                if log_format.pattern.match(line):
                    return log_format

        return self.default_format

    def detect_file_format(self, file_path: str) -> LogFormat:
        try:
            sample = []
            with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
                for line in f:
                    if line.strip():
                        sample.append(line)
                    if len(sample) >= SAMPLE_LINES:
                        break
        except OSError as e:
            logger.warning("Error detecting format for %s: %s", file_path, e)
            return self.default_format
        return self.detect_format(sample)

    def parse_timestamp(self, raw: str) -> datetime:
        """Parse a timestamp string into an aware UTC datetime.

        Layouts without an offset are read as host local time. Unparseable
        input is logged and replaced by the current time.
        """
        value = (raw or '').strip()
        for layout in TIMESTAMP_LAYOUTS:
            try:
                parsed = datetime.strptime(value, layout)
            except ValueError:
                continue
            # Naive values are taken as local time by astimezone()
            return parsed.astimezone(timezone.utc)

        logger.warning("Could not parse timestamp: %r", raw)
        return utcnow()

    def parse_line(self, line: str, domain_id: int, log_format: LogFormat) -> Optional[LogEntry]:
        if not line or not line.strip():
            return None

        try:
            if log_format.fields == (JSON_FIELD,):
                return self._parse_json_line(line, domain_id)
            return self._parse_pattern_line(line, domain_id, log_format)
        except Exception as e:
            logger.warning("Failed to parse line %r: %s", line[:100], e)
            return None

    def _parse_pattern_line(self, line: str, domain_id: int, log_format: LogFormat) -> Optional[LogEntry]:
        match = log_format.pattern.match(line)
        if not match:
            return None

        values = {}
        for field_name, value in zip(log_format.fields, match.groups()):
            if field_name in SEMANTIC_FIELDS and value is not None:
                values[field_name] = value

        timestamp = values.get('timestamp')
        return LogEntry(
            domain_id=domain_id,
            timestamp=self.parse_timestamp(timestamp) if timestamp else utcnow(),
            ip=values.get('ip', 'unknown'),
            method=values.get('method', ''),
            path=values.get('path', ''),
            status=_to_int(values.get('status')),
            size=_to_int(values.get('size')),
            response_time=_to_float(values.get('response_time')),
            user_agent=values.get('user_agent'),
            referer=values.get('referer'),
            raw_line=line,
        )

    def _parse_json_line(self, line: str, domain_id: int) -> Optional[LogEntry]:
        try:
            data = json.loads(line)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None

        def pick(field_name, default=None):
            for key in JSON_KEYS[field_name]:
                value = data.get(key)
                if value not in (None, ''):
                    return value
            return default

        return LogEntry(
            domain_id=domain_id,
            timestamp=self._json_timestamp(pick('timestamp')),
            ip=str(pick('ip', 'unknown')),
            method=str(pick('method', 'GET')),
            path=str(pick('path', '/')),
            status=_to_int(pick('status'), 200) or 200,
            size=_to_int(pick('size')),
            response_time=_to_float(pick('response_time')),
            user_agent=_to_str(pick('user_agent')),
            referer=_to_str(pick('referer')),
            raw_line=line,
        )

    def _json_timestamp(self, value) -> datetime:
        if value is None:
            return utcnow()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000 if value > 1e12 else value
            try:
                return datetime.fromtimestamp(seconds, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as e:
                logger.warning("Epoch timestamp out of range: %r (%s)", value, e)
                return utcnow()
        return self.parse_timestamp(str(value))

    def stream_file(self, file_path: str, domain_id: int, from_offset: int = 0,
                    log_format: Optional[LogFormat] = None) -> Iterator[LogEntry]:
        """Lazily parse the file from ``from_offset`` to its current end.

        The end is fixed when this is called, so appends made while the
        caller iterates are not included. Each call opens the file again.
        """
        end = os.path.getsize(file_path)
        if log_format is None:
            log_format = self.detect_file_format(file_path)
        return self._stream(file_path, domain_id, from_offset, end, log_format)

    def _stream(self, file_path, domain_id, start, end, log_format) -> Iterator[LogEntry]:
        for line in read_lines(file_path, start, end):
            entry = self.parse_line(line, domain_id, log_format)
            if entry:
                yield entry

    def parse_file(self, file_path: str, domain_id: int, max_lines: int = 10000) -> List[LogEntry]:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File does not exist: {file_path}")

        log_format = self.detect_file_format(file_path)
        entries = []
        for line_count, line in enumerate(read_lines(file_path)):
            if line_count >= max_lines:
                break
            entry = self.parse_line(line, domain_id, log_format)
            if entry:
                entries.append(entry)
        return entries
