"""
CSV ledger of uploaded fixtures.

One row per uploaded file with its CDN and origin URLs. Merging keeps every
existing row, adds rows whose file name is new, and rewrites the file
atomically sorted by file name.
"""

import csv
import logging
import os
from dataclasses import dataclass, astuple
from pathlib import Path
from typing import Dict, Iterable, List, Union

logger = logging.getLogger(__name__)

HEADER = ('cdn_url', 'origin_url', 'file_name', 'file_size_bytes')


@dataclass(frozen=True)
class LedgerRow:
    cdn_url: str
    origin_url: str
    file_name: str
    file_size_bytes: Union[int, str] = ''


class UrlLedger:
    """Reads, merges and rewrites the URL ledger CSV."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> List[LedgerRow]:
        """
        Read existing rows.

        Older ledgers had one (cdn_url), two (cdn_url, origin_url) or four
        columns; short rows are padded and the file name is recovered from
        the CDN URL.
        """
        if not self.path.exists():
            return []

        rows = []
        with open(self.path, 'r', newline='', encoding='utf-8') as f:
            reader = csv.reader(f)
            for line_number, record in enumerate(reader, start=1):
                if not record or (line_number == 1 and record[0] == HEADER[0]):
                    continue
                if len(record) not in (1, 2, 4):
                    logger.warning(f"Skipping malformed ledger row {line_number} in {self.path}")
                    continue

                cdn_url = record[0]
                origin_url = record[1] if len(record) > 1 else ''
                file_name = record[2] if len(record) == 4 else ''
                size = record[3] if len(record) == 4 else ''
                if not file_name:
                    file_name = cdn_url.rstrip('/').rsplit('/', 1)[-1]
                rows.append(LedgerRow(cdn_url, origin_url, file_name, size))

        logger.info(f"Loaded {len(rows)} existing rows from {self.path}")
        return rows

    def merge(self, new_rows: Iterable[LedgerRow]) -> List[LedgerRow]:
        """
        Merge rows into the ledger and rewrite it.

        Args:
            new_rows: Rows for freshly uploaded files

        Returns:
            All rows now in the ledger, sorted by file name
        """
        merged: Dict[str, LedgerRow] = {row.file_name: row for row in self.read()}

        added = 0
        for row in new_rows:
            if row.file_name in merged:
                logger.debug(f"Skipping duplicate ledger entry: {row.file_name}")
                continue
            merged[row.file_name] = row
            added += 1

        rows = [merged[name] for name in sorted(merged)]
        self._write(rows)
        logger.info(f"Ledger {self.path}: {added} new, {len(rows)} total rows")
        return rows

    def _write(self, rows: List[LedgerRow]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(self.path.name + '.tmp')

        try:
            with open(temp_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(HEADER)
                for row in rows:
                    writer.writerow(astuple(row))
            os.replace(temp_path, self.path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
