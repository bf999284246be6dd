"""
Feed sources for the distributor catalog.

A feed source yields raw rows (column name -> string). Sources are tried in
priority order by FallbackFeedSource: the remote feed first, then local CSV
copies. The first source that yields at least one row wins.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import httpx

from ..errors import FeedUnavailable

logger = logging.getLogger(__name__)

FeedRow = Dict[str, str]


class FeedSource(Protocol):
    """Anything that can produce raw feed rows."""

    name: str

    async def load_rows(self) -> List[FeedRow]: ...


def parse_csv_text(text: str) -> List[FeedRow]:
    """Parse CSV text into rows keyed by header."""
    if text.startswith("\ufeff"):
        text = text[1:]
    reader = csv.DictReader(io.StringIO(text))
    return [row for row in reader]


class StaticFeedSource:
    """In-memory rows (fixtures, already-downloaded data)."""

    def __init__(self, rows: Iterable[FeedRow], name: str = "static"):
        self.name = name
        self._rows = list(rows)

    async def load_rows(self) -> List[FeedRow]:
        return list(self._rows)


class CsvFileFeedSource:
    """Local CSV fallback.

    Looks in order:
    1. Explicit candidate file paths
    2. The first ``*.csv`` file inside each candidate directory
    """

    def __init__(
        self,
        paths: Sequence[str | Path] = (),
        dirs: Sequence[str | Path] = (),
        encoding: str = "utf-8-sig",
    ):
        self.name = "local-csv"
        self.paths = [Path(p) for p in paths]
        self.dirs = [Path(d) for d in dirs]
        self.encoding = encoding

    def find_file(self) -> Optional[Path]:
        for path in self.paths:
            if path.is_file():
                return path

        for directory in self.dirs:
            if not directory.is_dir():
                continue
            for candidate in sorted(directory.glob("*.csv")):
                return candidate

        return None

    def _read(self, path: Path) -> List[FeedRow]:
        with open(path, newline="", encoding=self.encoding) as f:
            return [row for row in csv.DictReader(f)]

    async def load_rows(self) -> List[FeedRow]:
        path = self.find_file()
        if path is None:
            checked = [str(p) for p in self.paths] + [f"{d}/*.csv" for d in self.dirs]
            raise FileNotFoundError(f"CSV file not found. Checked: {', '.join(checked)}")

        rows = await asyncio.to_thread(self._read, path)
        size_mb = path.stat().st_size / (1024 * 1024)
        logger.info(f"Loaded {len(rows)} rows from {path} ({size_mb:.2f} MB)")
        return rows


class HttpFeedSource:
    """Remote CSV feed served over HTTP(S)."""

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.name = "http"
        self.url = url
        self.timeout = timeout
        self._client = client

    async def load_rows(self) -> List[FeedRow]:
        if self._client is not None:
            response = await self._client.get(self.url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
        response.raise_for_status()

        rows = parse_csv_text(response.text)
        logger.info(f"Downloaded {len(rows)} rows from {self.url}")
        return rows


class FallbackFeedSource:
    """Tries each source in order; the first that yields rows wins."""

    def __init__(self, sources: Sequence[FeedSource]):
        self.name = "fallback"
        self.sources = list(sources)
        self.last_source: Optional[str] = None

    async def load_rows(self) -> List[FeedRow]:
        failures: List[str] = []

        for source in self.sources:
            try:
                rows = await source.load_rows()
            except Exception as e:
                logger.warning(f"Feed source {source.name} failed: {e}")
                failures.append(f"{source.name}: {e}")
                continue

            if rows:
                self.last_source = source.name
                return rows

            failures.append(f"{source.name}: no rows")
            logger.warning(f"Feed source {source.name} returned no rows")

        raise FeedUnavailable(
            "Unable to load feed data from any source"
            + (f" ({'; '.join(failures)})" if failures else "")
        )
