"""CLI 헬퍼 테스트."""

import argparse
import json
import random
from unittest.mock import MagicMock

import pytest

from main import fetch_dataset, print_response
from pipelines.fallback import FallbackPolicy
from pipelines.market_data import MarketDataService
from pipelines.settings import ServiceSettings


@pytest.fixture
def service(fake_source, fake_clock):
    return MarketDataService(
        ServiceSettings(min_interval=0.0, quota_enabled=False),
        source=fake_source,
        client=MagicMock(),
        fallback=FallbackPolicy(rng=random.Random(1)),
        clock=fake_clock,
    )


def _args(dataset, coin="bitcoin", days=7):
    return argparse.Namespace(dataset=dataset, coin=coin, days=days)


@pytest.mark.asyncio
async def test_fetch_dataset_dispatch(service, fake_source):
    await fetch_dataset(service, _args("prices"))
    assert fake_source.fetch_markets.await_count == 1

    await fetch_dataset(service, _args("chart", coin="solana", days=30))
    args = fake_source.fetch_series.await_args.args
    assert args[1:3] == ("solana", 30)

    await fetch_dataset(service, _args("historical", coin="ethereum"))
    args = fake_source.fetch_series.await_args.args
    assert args[1:3] == ("ethereum", 365)


@pytest.mark.asyncio
async def test_print_response_json(service, capsys):
    print_response(await service.get_prices())
    body = json.loads(capsys.readouterr().out)
    assert body["cached"] is False
    assert body["data"][0]["id"] == "bitcoin"
