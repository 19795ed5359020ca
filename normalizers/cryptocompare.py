"""
CryptoCompare payload normalization.
"""

import time
from typing import Iterable, List, Optional

from normalizers.records import (
    HISTORICAL_PERIODS,
    ChartPoint,
    HistoricalSnapshot,
    MarketSnapshot,
    PayloadError,
    as_float,
    make_chart_point,
)
from normalizers.symbol_map import display_name, normalize_symbol, to_coin_id

IMAGE_BASE = "https://www.cryptocompare.com"


def _check_response(payload) -> None:
    if not isinstance(payload, dict):
        raise PayloadError(f"expected object, got {type(payload).__name__}")
    if payload.get("Response") == "Error":
        raise PayloadError(payload.get("Message") or "CryptoCompare error response")


def _quote(raw: dict, symbol: str, currency: str) -> dict:
    # RAW.<SYM>.<CUR>; anything other than nested objects counts as missing
    by_currency = raw.get(symbol)
    if not isinstance(by_currency, dict):
        return {}
    info = by_currency.get(currency)
    return info if isinstance(info, dict) else {}


def parse_price_multifull(
    payload, symbols: Iterable[str], currency: str = "USD"
) -> List[MarketSnapshot]:
    """/data/pricemultifull -> one snapshot per requested symbol, in request order."""
    _check_response(payload)
    raw = payload.get("RAW")
    if not isinstance(raw, dict):
        raise PayloadError("missing RAW section")

    out = []
    for symbol in symbols:
        s = normalize_symbol(symbol)
        info = _quote(raw, s, currency)
        coin_id = to_coin_id(s)
        image = info.get("IMAGEURL")
        out.append(
            MarketSnapshot(
                id=coin_id,
                name=display_name(coin_id),
                symbol=s.lower(),
                current_price=as_float(info.get("PRICE")),
                price_change_percentage_24h=as_float(info.get("CHANGEPCT24HOUR")),
                market_cap=as_float(info.get("MKTCAP")),
                total_volume=as_float(info.get("TOTALVOLUME24H")),
                image=f"{IMAGE_BASE}{image}" if isinstance(image, str) and image else "",
            )
        )
    return out


def parse_histoday(payload) -> List[ChartPoint]:
    """/data/v2/histoday -> daily close series, oldest first.

    Rows without a usable ``time`` are skipped.
    """
    _check_response(payload)
    data = payload.get("Data")
    rows = data.get("Data") if isinstance(data, dict) else None
    if rows is None:
        rows = []
    if not isinstance(rows, list):
        raise PayloadError("Data.Data is not a list")

    points = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        point = make_chart_point(row.get("time"), row.get("close"), scale=1000)
        if point is not None:
            points.append(point)
    points.sort(key=lambda p: p.timestamp)
    return points


def historical_from_series(
    coin_id: str, points: List[ChartPoint], now: Optional[float] = None
) -> HistoricalSnapshot:
    """Pick the close nearest to each lookback period (1d/1w/1m/1y)."""
    if not points:
        raise PayloadError("empty price series")
    now_ms = (now if now is not None else time.time()) * 1000

    prices = {}
    for period, days in HISTORICAL_PERIODS.items():
        target = now_ms - days * 86_400_000
        nearest = min(points, key=lambda p: abs(p.timestamp - target))
        prices[period] = nearest.price
    return HistoricalSnapshot(coin_id=coin_id, prices=prices)
