"""Load historical market snapshots from JSON or CSV files for replay.

JSON files contain either a list of snapshot objects or an object with a
``snapshots`` list. CSV files have one snapshot per row. Keys may be
camelCase (``marketId``, ``outcomePrices``, ``volume24h``, ``endDate``) or
snake_case. List-valued fields may be given as JSON arrays or, in CSV, as
JSON-encoded strings. Rows that cannot be parsed are skipped with a warning.
"""

import csv
import json
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any, cast

from pm_lifecycle.apps.lifecycle.config import parse_bool
from pm_lifecycle.apps.lifecycle.models import MarketSnapshot
from pm_lifecycle.core.models import to_decimal
from pm_lifecycle.core.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

_KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "time", "ts"),
    "market_id": ("market_id", "marketId", "id", "condition_id", "conditionId"),
    "question": ("question", "title"),
    "outcome_prices": ("outcome_prices", "outcomePrices", "prices"),
    "liquidity": ("liquidity",),
    "volume_24h": ("volume_24h", "volume24h", "volume24hr", "volume"),
    "end_time": ("end_time", "endTime", "end_date", "endDate"),
    "outcomes": ("outcomes",),
    "token_ids": ("token_ids", "tokenIds", "clobTokenIds"),
    "tags": ("tags",),
    "active": ("active",),
}


def _lookup(row: Mapping[str, Any], field: str) -> Any:
    """Return the first present alias of ``field`` in ``row``, or ``None``."""
    for alias in _KEY_ALIASES[field]:
        value = row.get(alias)
        if value is not None and value != "":
            return value
    return None


def _as_list(value: Any) -> list[Any]:
    """Interpret a list, a JSON array string, or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, list | tuple):
        return list(cast("Iterable[Any]", value))
    text = str(value).strip()
    if not text:
        return []
    if text.startswith("["):
        decoded: Any = json.loads(text)
        if not isinstance(decoded, list):
            msg = f"Expected a JSON array, got {text[:40]}"
            raise ValueError(msg)
        return cast("list[Any]", decoded)
    return [part.strip() for part in text.split(",") if part.strip()]


def _parse_price(value: Any) -> Decimal:
    """Parse an outcome price, rejecting non-numeric input."""
    price = to_decimal(value, default=Decimal("NaN"))
    if price.is_nan():
        msg = f"Invalid outcome price: {value!r}"
        raise ValueError(msg)
    return price


def parse_snapshot(row: Mapping[str, Any]) -> MarketSnapshot:
    """Build a ``MarketSnapshot`` from one loosely-keyed record.

    Raises:
        ValueError: If a required field is missing or malformed.

    """
    timestamp = _lookup(row, "timestamp")
    market_id = _lookup(row, "market_id")
    end_time = _lookup(row, "end_time")
    if timestamp is None or market_id is None or end_time is None:
        msg = "snapshot needs timestamp, market id and end date"
        raise ValueError(msg)
    prices = tuple(_parse_price(p) for p in _as_list(_lookup(row, "outcome_prices")))
    if not prices:
        msg = f"snapshot for market {market_id} has no outcome prices"
        raise ValueError(msg)
    outcomes = tuple(str(o) for o in _as_list(_lookup(row, "outcomes")))
    kwargs: dict[str, Any] = {}
    if outcomes:
        kwargs["outcomes"] = outcomes
    active = _lookup(row, "active")
    return MarketSnapshot(
        timestamp=parse_timestamp(timestamp),
        market_id=str(market_id),
        question=str(_lookup(row, "question") or ""),
        outcome_prices=prices,
        liquidity=to_decimal(_lookup(row, "liquidity")),
        volume_24h=to_decimal(_lookup(row, "volume_24h")),
        end_time=parse_timestamp(end_time),
        token_ids=tuple(str(t) for t in _as_list(_lookup(row, "token_ids"))),
        tags=tuple(str(t) for t in _as_list(_lookup(row, "tags"))),
        active=True if active is None else parse_bool(active),
        **kwargs,
    )


def _parse_rows(rows: Iterable[Mapping[str, Any]], source: str) -> list[MarketSnapshot]:
    """Parse every row, skipping (and logging) malformed ones."""
    snapshots: list[MarketSnapshot] = []
    skipped = 0
    for index, row in enumerate(rows):
        try:
            snapshots.append(parse_snapshot(row))
        except (ValueError, TypeError) as exc:
            skipped += 1
            logger.warning("Skipping row %d of %s: %s", index, source, exc)
    logger.info("Loaded %d snapshots from %s (%d skipped)", len(snapshots), source, skipped)
    return snapshots


def load_json_snapshots(path: Path) -> list[MarketSnapshot]:
    """Load snapshots from a JSON file.

    Raises:
        ValueError: If the file is not a list or an object with ``snapshots``.

    """
    with path.open() as f:
        data: Any = json.load(f)
    if isinstance(data, dict):
        data = cast("dict[str, Any]", data).get("snapshots")
    if not isinstance(data, list):
        msg = f"{path} must contain a list of snapshots or a 'snapshots' list"
        raise ValueError(msg)
    rows = [cast("dict[str, Any]", r) for r in cast("list[Any]", data) if isinstance(r, dict)]
    return _parse_rows(rows, str(path))


def load_csv_snapshots(path: Path) -> list[MarketSnapshot]:
    """Load snapshots from a CSV file with a header row."""
    with path.open(newline="") as f:
        reader = csv.DictReader(f)
        return _parse_rows(list(reader), str(path))


def load_snapshots(path: Path) -> list[MarketSnapshot]:
    """Load snapshots from ``path``, choosing the format by file suffix.

    Raises:
        ValueError: If the suffix is neither ``.json`` nor ``.csv``.

    """
    suffix = path.suffix.lower()
    if suffix == ".json":
        return load_json_snapshots(path)
    if suffix == ".csv":
        return load_csv_snapshots(path)
    msg = f"Unsupported snapshot file type: {path.suffix} (expected .json or .csv)"
    raise ValueError(msg)
