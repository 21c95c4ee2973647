"""
Usage extraction over session logs.

Folds every usage event found in the discovered log files into one
per-day, per-model aggregation.
"""

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from ccgh_stats.config.loader import SyncSettings
from .scanner import find_log_files
from .usage import UsageMap, UsageRecord, add_event, merge_usage, parse_line, to_records


@dataclass
class FileFoldResult:
    """What happened while folding a single log file."""
    path: Path
    events: int = 0
    skipped: Counter = field(default_factory=Counter)
    error: Optional[OSError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def fold_file(path: Path, usage_map: UsageMap, min_date: Optional[str] = None) -> FileFoldResult:
    """Parse one log file and add its usage events to ``usage_map``.

    Bad lines never stop the fold; each is tallied by skip reason. The file
    is all-or-nothing: if reading fails partway, none of its events reach
    ``usage_map`` and the error is recorded on the result.

    Args:
        path: Session log file
        usage_map: Aggregation map, mutated only on a complete read
        min_date: Optional YYYY-MM-DD floor applied to every event

    Returns:
        FileFoldResult for this file
    """
    result = FileFoldResult(path=path)
    file_usage: UsageMap = {}
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                parsed = parse_line(line, min_date)
                if parsed.event is None:
                    result.skipped[parsed.skipped] += 1
                    continue
                add_event(file_usage, parsed.event)
                result.events += 1
    except OSError as e:
        result.error = e
        result.events = 0
        return result
    merge_usage(usage_map, file_usage)
    return result


@dataclass
class ExtractionResult:
    """Aggregated records plus per-file fold outcomes."""
    records: List[UsageRecord]
    files: List[FileFoldResult] = field(default_factory=list)

    @property
    def failed_files(self) -> List[FileFoldResult]:
        return [f for f in self.files if not f.ok]

    @property
    def events(self) -> int:
        return sum(f.events for f in self.files)

    @property
    def skipped(self) -> Counter:
        total: Counter = Counter()
        for file_result in self.files:
            total.update(file_result.skipped)
        return total

    @property
    def total_tokens(self) -> int:
        return sum(record.total_tokens for record in self.records)


def fold_files(paths: Iterable[Path], min_date: Optional[str] = None) -> ExtractionResult:
    """Fold a set of files into a fresh aggregation."""
    usage_map: UsageMap = {}
    file_results = [fold_file(path, usage_map, min_date) for path in paths]
    return ExtractionResult(records=to_records(usage_map), files=file_results)


def modified_since(paths: Iterable[Path], cutoff_ms: float) -> List[Path]:
    """Keep only files whose mtime is strictly after ``cutoff_ms`` (epoch ms).

    Files that cannot be stat'ed are dropped.
    """
    selected = []
    for path in paths:
        try:
            mtime_ms = path.stat().st_mtime * 1000
        except OSError:
            continue
        if mtime_ms > cutoff_ms:
            selected.append(path)
    return selected


def extract_all(settings: SyncSettings) -> ExtractionResult:
    """Aggregate usage across every session log, with no date filter."""
    paths = find_log_files(settings.logs_root, settings.log_extension)
    return fold_files(paths)


def extract_modified(
    settings: SyncSettings,
    since_ms: float,
    min_date: Optional[str] = None
) -> ExtractionResult:
    """Aggregate usage from logs modified after ``since_ms``.

    Args:
        settings: Runtime settings (log root and extension)
        since_ms: Modification-time cutoff in epoch milliseconds
        min_date: Optional YYYY-MM-DD floor for event days

    Returns:
        ExtractionResult for the modified files only
    """
    paths = find_log_files(settings.logs_root, settings.log_extension)
    return fold_files(modified_since(paths, since_ms), min_date)
