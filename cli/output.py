"""
Output rendering for the certreg CLI.

Responses are printed as JSON, YAML or plain-text tables. Tables know a
little about registry data: validity flags read VALID/REVOKED, transaction
hashes are shortened and event listings use a fixed column order.
"""

import json
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml
from tabulate import tabulate


# Keys holding certificate validity
VALIDITY_KEYS = {'valid', 'isValid'}

# Keys holding transaction hashes
HASH_KEYS = {'txHash', 'tx_hash'}

# Preferred leading columns for listings; remaining keys follow in first-seen order
LEADING_COLUMNS = ['blockNumber', 'event', 'id', 'issuer', 'studentName', 'courseName', 'issueDate', 'valid']

ANSI = {
    'good': '\033[32m',
    'bad': '\033[31m',
    'key': '\033[1;36m',
    'muted': '\033[90m',
    'reset': '\033[0m',
}


def to_plain(value: Any) -> Any:
    """Convert values to JSON-compatible types."""
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, set):
        return sorted(to_plain(v) for v in value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value


class OutputFormatter:
    """Renders command results as table, json or yaml."""

    def __init__(self, format_type: str = 'table',
                 color_output: bool = True,
                 max_width: Optional[int] = None):
        """
        Args:
            format_type: Output format (table, json, yaml)
            color_output: Color table cells when stdout is a terminal
            max_width: Maximum width of a table cell
        """
        self.format_type = format_type
        self.color_output = color_output and sys.stdout.isatty()
        self.max_width = max_width or 50

    def format(self, data: Any) -> str:
        if self.format_type == 'json':
            return json.dumps(to_plain(data), indent=2, default=str)
        if self.format_type == 'yaml':
            return yaml.safe_dump(to_plain(data), default_flow_style=False, sort_keys=False).rstrip()
        return self.format_table(data)

    def format_table(self, data: Any) -> str:
        if isinstance(data, dict):
            return self._record_table(data)
        if isinstance(data, (list, tuple)):
            return self._listing_table(data)
        return str(data)

    def _record_table(self, record: Dict[str, Any]) -> str:
        """One row per field; nested mappings become dotted keys."""
        rows = [
            [self._paint(key, 'key'), self._cell(key.rsplit('.', 1)[-1], value)]
            for key, value in flatten(record).items()
        ]
        return tabulate(rows, tablefmt='plain')

    def _listing_table(self, items: List[Any]) -> str:
        if not items:
            return "No data available"
        if not all(isinstance(item, dict) for item in items):
            return '\n'.join(str(item) for item in items)

        records = [flatten(item) for item in items]
        columns = order_columns(records)
        rows = [[self._cell(column, record.get(column)) for column in columns] for record in records]
        return tabulate(rows, headers=columns, tablefmt='grid')

    def _cell(self, key: str, value: Any) -> str:
        if value is None:
            return self._paint('-', 'muted')
        if key in VALIDITY_KEYS:
            return self._paint('VALID', 'good') if value else self._paint('REVOKED', 'bad')
        if isinstance(value, bool):
            return 'yes' if value else 'no'
        if key in HASH_KEYS and isinstance(value, str) and len(value) > 18:
            return f"{value[:10]}...{value[-6:]}"
        if isinstance(value, datetime):
            return value.strftime('%Y-%m-%d %H:%M:%S')
        if isinstance(value, (list, tuple, set)):
            return f"[{len(value)} items]"

        text = str(to_plain(value))
        if len(text) > self.max_width:
            text = text[:self.max_width - 3] + '...'
        return text

    def _paint(self, text: str, style: str) -> str:
        if not self.color_output:
            return text
        return f"{ANSI[style]}{text}{ANSI['reset']}"


def flatten(record: Dict[str, Any], prefix: str = '') -> Dict[str, Any]:
    """Flatten nested mappings into dotted keys."""
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten(value, name))
        else:
            flat[name] = value
    return flat


def order_columns(records: Iterable[Dict[str, Any]]) -> List[str]:
    """Leading registry columns first, then the rest in first-seen order."""
    seen: List[str] = []
    for record in records:
        seen.extend(key for key in record if key not in seen)
    leading = [column for column in LEADING_COLUMNS if column in seen]
    return leading + [column for column in seen if column not in leading]


__all__ = ['OutputFormatter', 'flatten', 'order_columns', 'to_plain']
