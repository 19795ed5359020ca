"""
CoinGecko payload normalization.
"""

from typing import List

from normalizers.records import (
    ChartPoint,
    MarketSnapshot,
    PayloadError,
    as_float,
    make_chart_point,
)


def _text(value) -> str:
    return value if isinstance(value, str) else ""


def parse_markets(payload) -> List[MarketSnapshot]:
    """/coins/markets -> snapshots, upstream order kept."""
    if not isinstance(payload, list):
        raise PayloadError(f"expected list, got {type(payload).__name__}")

    out = []
    for row in payload:
        if not isinstance(row, dict):
            continue
        coin_id = _text(row.get("id"))
        if not coin_id:
            continue
        out.append(
            MarketSnapshot(
                id=coin_id,
                name=_text(row.get("name")) or coin_id,
                symbol=_text(row.get("symbol")).lower(),
                current_price=as_float(row.get("current_price")),
                price_change_percentage_24h=as_float(
                    row.get("price_change_percentage_24h")
                ),
                market_cap=as_float(row.get("market_cap")),
                total_volume=as_float(row.get("total_volume")),
                image=_text(row.get("image")),
            )
        )
    return out


def parse_market_chart(payload) -> List[ChartPoint]:
    """/coins/{id}/market_chart -> [ChartPoint], oldest first.

    Pairs without a usable timestamp are skipped.
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"expected object, got {type(payload).__name__}")
    prices = payload.get("prices")
    if not isinstance(prices, list):
        raise PayloadError("missing prices series")

    points = []
    for pair in prices:
        if not isinstance(pair, (list, tuple)) or len(pair) < 2:
            continue
        point = make_chart_point(pair[0], pair[1])
        if point is not None:
            points.append(point)
    points.sort(key=lambda p: p.timestamp)
    return points
