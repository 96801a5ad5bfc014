"""
Reads PSGC tabular sources (CSV) from disk or over HTTP.
"""
import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import httpx

from georef.config.hierarchy import LEVELS
from georef.core.exceptions import SourceError

logger = logging.getLogger(__name__)


@dataclass
class PsgcSources:
    """One optional source (path or URL) per hierarchy level."""
    regions: Optional[str] = None
    provinces: Optional[str] = None
    cities: Optional[str] = None
    barangays: Optional[str] = None

    def by_level(self) -> Dict[str, Optional[str]]:
        return {
            "region": self.regions,
            "province": self.provinces,
            "city": self.cities,
            "barangay": self.barangays,
        }

    def items(self) -> Iterator[Tuple[str, str]]:
        """(level, source) pairs in hierarchy order, skipping absent levels."""
        sources = self.by_level()
        for level in LEVELS:
            if sources[level]:
                yield level, sources[level]


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def _fetch_text(url: str, timeout: float) -> str:
    logger.info(f"[Sources] Downloading {url}")
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise SourceError(url, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise SourceError(url, str(e)) from e
    return response.text


def _read_text(path: str) -> str:
    file_path = Path(path)
    if not file_path.exists():
        raise SourceError(path, "file not found")
    # utf-8-sig drops the BOM spreadsheet exports often carry
    return file_path.read_text(encoding="utf-8-sig")


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Parses CSV text into dicts keyed by lower-cased, trimmed headers."""
    text = text.lstrip("\ufeff")
    reader = csv.DictReader(io.StringIO(text))
    rows = []
    for raw in reader:
        rows.append({
            (key or "").strip().lower(): value
            for key, value in raw.items()
            if key is not None
        })
    return rows


def read_source(source: str, timeout: float = 30.0) -> List[Dict[str, str]]:
    """Loads one tabular source (local CSV path or http(s) URL)."""
    text = _fetch_text(source, timeout) if is_url(source) else _read_text(source)
    rows = parse_csv(text)
    logger.info(f"[Sources] 📄 Loaded {len(rows)} records from {source}")
    return rows
