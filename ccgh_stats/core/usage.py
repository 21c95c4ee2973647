"""
Usage records and session log line parsing.

Turns single JSONL lines into usage events and accumulates them into
per-day, per-model totals.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class SkipReason(Enum):
    """Why a log line did not contribute to the totals."""
    BLANK = "blank"
    INVALID_JSON = "invalid_json"
    NOT_ASSISTANT = "not_assistant"
    NO_USAGE = "no_usage"
    NO_TIMESTAMP = "no_timestamp"
    BAD_SHAPE = "bad_shape"
    BEFORE_MIN_DATE = "before_min_date"


class UsageKey(NamedTuple):
    """Aggregation key: calendar day plus normalized model name."""
    day: str
    model: str


@dataclass(frozen=True)
class UsageRecord:
    """Aggregated token usage for one (day, model) pair, the unit of sync."""
    date: str
    model: str
    input: int
    output: int

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output)."""
        return self.input + self.output

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation sent to the stats service."""
        return {
            "date": self.date,
            "model": self.model,
            "input": self.input,
            "output": self.output,
        }


@dataclass
class UsageTotals:
    """Mutable running totals for a single UsageKey."""
    input: int = 0
    output: int = 0
    events: int = 0

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input += input_tokens
        self.output += output_tokens
        self.events += 1


@dataclass(frozen=True)
class UsageEvent:
    """Token usage carried by one assistant log line."""
    key: UsageKey
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class LineResult:
    """Outcome of parsing one line: an event, or the reason it was skipped."""
    event: Optional[UsageEvent] = None
    skipped: Optional[SkipReason] = None

    @classmethod
    def skip(cls, reason: SkipReason) -> "LineResult":
        return cls(skipped=reason)


UsageMap = Dict[UsageKey, UsageTotals]


def normalize_model_name(model: str) -> str:
    """Map a raw model identifier to its family display name.

    Matching is case-sensitive and the first hit wins:
    opus, then sonnet, then haiku. Anything else passes through.
    """
    if "opus" in model:
        return "Opus"
    if "sonnet" in model:
        return "Sonnet"
    if "haiku" in model:
        return "Haiku"
    return model


def _token_count(usage: Dict[str, Any], name: str) -> Optional[int]:
    value = usage.get(name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def parse_line(line: str, min_date: Optional[str] = None) -> LineResult:
    """Parse a single JSONL line into a usage event.

    Only assistant messages carrying a usage object and a timestamp count.
    The event day is the first 10 characters of the ISO-8601 timestamp, so
    comparing it to ``min_date`` as a string is a chronological comparison.

    Args:
        line: Raw line from a session log
        min_date: Optional YYYY-MM-DD floor; earlier days are skipped

    Returns:
        LineResult holding either the event or the skip reason
    """
    line = line.strip()
    if not line:
        return LineResult.skip(SkipReason.BLANK)

    try:
        data = json.loads(line)
    except ValueError:
        return LineResult.skip(SkipReason.INVALID_JSON)

    if not isinstance(data, dict):
        return LineResult.skip(SkipReason.BAD_SHAPE)
    if data.get("type") != "assistant":
        return LineResult.skip(SkipReason.NOT_ASSISTANT)

    message = data.get("message")
    if not isinstance(message, dict):
        return LineResult.skip(SkipReason.NO_USAGE)
    usage = message.get("usage")
    if usage is None:
        return LineResult.skip(SkipReason.NO_USAGE)
    if not isinstance(usage, dict):
        return LineResult.skip(SkipReason.BAD_SHAPE)

    timestamp = data.get("timestamp")
    if not timestamp:
        return LineResult.skip(SkipReason.NO_TIMESTAMP)
    if not isinstance(timestamp, str):
        return LineResult.skip(SkipReason.BAD_SHAPE)

    day = timestamp[:10]
    if min_date and day < min_date:
        return LineResult.skip(SkipReason.BEFORE_MIN_DATE)

    input_tokens = _token_count(usage, "input_tokens")
    output_tokens = _token_count(usage, "output_tokens")
    if input_tokens is None or output_tokens is None:
        return LineResult.skip(SkipReason.BAD_SHAPE)

    model = message.get("model") or "unknown"
    if not isinstance(model, str):
        return LineResult.skip(SkipReason.BAD_SHAPE)

    return LineResult(event=UsageEvent(
        key=UsageKey(day=day, model=normalize_model_name(model)),
        input_tokens=input_tokens,
        output_tokens=output_tokens
    ))


def add_event(usage_map: UsageMap, event: UsageEvent) -> None:
    """Add an event to the running totals, creating the entry on first use."""
    totals = usage_map.get(event.key)
    if totals is None:
        totals = usage_map[event.key] = UsageTotals()
    totals.add(event.input_tokens, event.output_tokens)


def merge_usage(target: UsageMap, source: UsageMap) -> None:
    """Add every total in ``source`` into ``target``."""
    for key, totals in source.items():
        merged = target.get(key)
        if merged is None:
            merged = target[key] = UsageTotals()
        merged.input += totals.input
        merged.output += totals.output
        merged.events += totals.events


def to_records(usage_map: UsageMap) -> List[UsageRecord]:
    """Flatten aggregated totals into records, ordered by day then model."""
    return [
        UsageRecord(date=key.day, model=key.model, input=totals.input, output=totals.output)
        for key, totals in sorted(usage_map.items())
    ]


def format_tokens(num: int) -> str:
    """Format a token count with a K/M/B suffix."""
    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.1f}B"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return f"{num:,}"
