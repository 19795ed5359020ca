#!/usr/bin/env python3
"""
CryptoVault Market Data
가격 API 조회 (Rate limit 큐 + TTL 캐시 + Fallback)

사용법:
    python main.py                               # 현재가 스냅샷
    python main.py --dataset chart --coin solana --days 30
    python main.py --dataset historical --coin ethereum
    python main.py --watch 20                    # 20초마다 반복 조회
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pipelines.market_data import DataResponse, MarketDataService
from pipelines.settings import (
    DATASET_CHART,
    DATASET_HISTORICAL,
    DATASET_PRICES,
    DEFAULT_CONFIG_PATH,
    ServiceSettings,
    load_config,
)


# 로깅 설정
def setup_logging(config: dict):
    log_config = config.get("logging") or {}
    level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)

    # 로그 디렉토리 생성
    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
    )


async def fetch_dataset(service: MarketDataService, args) -> DataResponse:
    """선택한 데이터셋 1회 조회."""
    if args.dataset == DATASET_CHART:
        return await service.get_chart(args.coin, args.days)
    if args.dataset == DATASET_HISTORICAL:
        return await service.get_historical(args.coin)
    return await service.get_prices()


def print_response(response: DataResponse):
    """결과 출력 (JSON)."""
    print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))


async def main():
    parser = argparse.ArgumentParser(description="CryptoVault Market Data")
    parser.add_argument(
        "--dataset",
        choices=[DATASET_PRICES, DATASET_CHART, DATASET_HISTORICAL],
        default=DATASET_PRICES,
        help="조회 데이터셋",
    )
    parser.add_argument("--coin", type=str, default="bitcoin", help="코인 ID (예: bitcoin)")
    parser.add_argument("--days", type=int, default=7, help="차트 일수")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG_PATH), help="설정 파일 경로")
    parser.add_argument("--watch", type=float, default=None, help="반복 조회 주기(초)")
    args = parser.parse_args()

    # 설정 로드
    config = load_config(args.config)
    setup_logging(config)
    settings = ServiceSettings.from_config(config)

    async with MarketDataService(settings) as service:
        if args.watch is None:
            print_response(await fetch_dataset(service, args))
            return

        print(f"\n🚀 {args.dataset} 조회 시작 (주기 {args.watch}초, 종료: Ctrl+C)\n", file=sys.stderr)
        while True:
            print_response(await fetch_dataset(service, args))
            await asyncio.sleep(args.watch)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\n👋 종료", file=sys.stderr)
