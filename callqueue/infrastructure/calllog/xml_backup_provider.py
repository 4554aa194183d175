"""
SMS Backup & Restore call-log provider.

Reads calls-*.xml exports with streaming iterparse so large histories do
not load into one tree. Handles UTF-8 (with or without BOM) and UTF-16
exports.
"""
import asyncio
import io
import logging
import os
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from callqueue.domain.interfaces.call_log_provider import CallLogProvider
from callqueue.domain.models.call_event import CallEvent

logger = logging.getLogger(__name__)

BOM_UTF8 = b'\xef\xbb\xbf'
BOM_UTF16_LE = b'\xff\xfe'
BOM_UTF16_BE = b'\xfe\xff'

FILE_PATTERN = "calls-*.xml"

# Placeholder written by the backup app for callers not in contacts
_UNKNOWN_CONTACT = "(Unknown)"


def _read_xml_text(path: Path) -> str:
    raw = path.read_bytes()
    if raw.startswith(BOM_UTF8):
        return raw[len(BOM_UTF8):].decode('utf-8', errors='replace')
    if raw.startswith(BOM_UTF16_LE):
        return raw[len(BOM_UTF16_LE):].decode('utf-16-le', errors='replace')
    if raw.startswith(BOM_UTF16_BE):
        return raw[len(BOM_UTF16_BE):].decode('utf-16-be', errors='replace')
    try:
        return raw.decode('utf-8', errors='strict')
    except UnicodeDecodeError:
        return raw.decode('utf-8', errors='replace')


def _strip_stylesheet(content: str) -> str:
    return re.sub(r'<\?xml-stylesheet[^?]*\?>', '', content)


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None or value == "" or value == "null":
        return None
    return value


def parse_call_file(path: Path, min_timestamp_ms: int = 0) -> List[CallEvent]:
    """
    Parse one calls XML export.

    Elements with a date before min_timestamp_ms are dropped. Malformed
    elements are skipped; a truncated file yields what parsed before the
    error.
    """
    events: List[CallEvent] = []

    try:
        stream = io.StringIO(_strip_stylesheet(_read_xml_text(path)))

        for _event, el in ET.iterparse(stream, events=('end',)):
            if el.tag.lower() != 'call':
                continue
            try:
                date = int(el.get('date', '0') or '0')
                if date < min_timestamp_ms:
                    continue

                name = _optional(el.get('contact_name'))
                events.append(CallEvent(
                    phone_number=el.get('number', '') or '',
                    call_type=el.get('type', '') or '',
                    timestamp=date,
                    duration=int(el.get('duration', '0') or '0'),
                    name=None if name == _UNKNOWN_CONTACT else name,
                    phone_account_id=_optional(el.get('phone_account_id')),
                    subscription_id=_optional(el.get('subscription_id')),
                ))
            except (ValueError, TypeError) as e:
                logger.debug(f"Skipped call element: {e}")
            finally:
                el.clear()

    except ET.ParseError as e:
        logger.error(f"XML parse error in {path.name}: {e}")
        return events
    except OSError as e:
        logger.error(f"File read error {path.name}: {e}")
        return []

    logger.info(f"Parsed {len(events)} calls from {path.name}")
    return events


class BackupXmlCallLogProvider(CallLogProvider):
    """
    Call history from a directory of SMS Backup & Restore exports.

    Overlapping exports are merged; the same (date, number) pair is
    returned once.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    @property
    def name(self) -> str:
        return "backup_xml"

    async def has_permission(self) -> bool:
        return self.directory.is_dir() and os.access(self.directory, os.R_OK)

    async def load(self, min_timestamp: datetime) -> List[CallEvent]:
        min_ms = int(min_timestamp.timestamp() * 1000)
        return await asyncio.to_thread(self._load_directory, min_ms)

    def _load_directory(self, min_timestamp_ms: int) -> List[CallEvent]:
        events: List[CallEvent] = []
        seen = set()

        for path in sorted(self.directory.glob(FILE_PATTERN)):
            for event in parse_call_file(path, min_timestamp_ms):
                key = (event.timestamp, event.phone_number)
                if key in seen:
                    continue
                seen.add(key)
                events.append(event)

        events.sort(key=lambda e: e.timestamp)
        logger.info(f"Loaded {len(events)} calls from {self.directory}")
        return events
