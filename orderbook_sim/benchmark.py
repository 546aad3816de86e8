#!/usr/bin/env python3
"""
Micro-benchmark for Orderbook Sim hot paths.

Tests:
1. Level normalization + book canonicalization throughput
2. Delta merge throughput (LocalDepth)
3. Order impact simulation speed
4. Depth/imbalance analytics speed

Usage:
    python -m orderbook_sim.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import numpy as np

from .datafeed.adapters.synthetic import generate_book
from .datafeed.levels import build_orderbook, parse_pairs
from .datafeed.local_book import LocalDepth
from .engine.depth import compute_depth, compute_imbalance
from .engine.impact import simulate_order_impact
from .types import OrderSide, OrderType, Venue


def generate_raw_levels(base_price: float = 43000.0, levels: int = 400) -> tuple[list, list]:
    """OKX-style string rows around base_price."""
    tick_size = 0.1

    bids = []
    asks = []

    for i in range(levels):
        bid_price = base_price - (i + 1) * tick_size
        ask_price = base_price + (i + 1) * tick_size

        bids.append([f"{bid_price:.1f}", f"{random.uniform(0.01, 5):.4f}", "0", "3"])
        asks.append([f"{ask_price:.1f}", f"{random.uniform(0.01, 5):.4f}", "0", "3"])

    return bids, asks


def generate_raw_delta(base_price: float, changes: int = 50) -> tuple[list, list]:
    """Random changed levels; qty 0 removes the level."""
    tick_size = 0.1

    bids = []
    asks = []

    for _ in range(changes // 2):
        offset = random.randint(1, 400)
        bid_qty = random.uniform(0.01, 5) if random.random() > 0.2 else 0
        ask_qty = random.uniform(0.01, 5) if random.random() > 0.2 else 0

        bids.append([f"{base_price - offset * tick_size:.1f}", f"{bid_qty:.4f}"])
        asks.append([f"{base_price + offset * tick_size:.1f}", f"{ask_qty:.4f}"])

    return bids, asks


def report(times: list[float], label: str = "calls/sec") -> None:
    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000

    print(f"  Iterations: {len(times)}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Rate: {1000/avg_time:,.0f} {label}")


def benchmark_normalization(iterations: int = 500) -> None:
    """Benchmark raw rows -> canonical Orderbook."""
    print("\n=== Normalization Benchmark (400 levels/side) ===")

    bids, asks = generate_raw_levels()
    ts = int(time.time() * 1000)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        build_orderbook(Venue.OKX, "BTC-USDT", ts, parse_pairs(bids), parse_pairs(asks))
        times.append(time.perf_counter() - start)

    report(times, "books/sec")


def benchmark_delta_merge(iterations: int = 2000) -> None:
    """Benchmark delta merge plus replacement book emission."""
    print("\n=== Delta Merge Benchmark ===")

    depth = LocalDepth(Venue.OKX, "BTC-USDT")
    bids, asks = generate_raw_levels()
    depth.load_snapshot(parse_pairs(bids), parse_pairs(asks))

    # Pre-generate deltas
    deltas = [generate_raw_delta(43000.0) for _ in range(iterations)]
    parsed = [(parse_pairs(b), parse_pairs(a)) for b, a in deltas]
    ts = int(time.time() * 1000)

    start = time.perf_counter()
    for b, a in parsed:
        depth.apply_delta(b, a)
        depth.to_orderbook(ts, depth=400)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Deltas applied: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} updates/sec")
    print(f"  Per update: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_impact(iterations: int = 5000) -> None:
    """Benchmark market and limit impact simulation."""
    print("\n=== Order Impact Simulation Benchmark ===")

    rng = np.random.default_rng(7)
    book = generate_book(Venue.BYBIT, "BTCUSDT", rng, levels=50)
    py_rng = random.Random(7)

    times = []
    for i in range(iterations):
        side = OrderSide.BUY if i % 2 else OrderSide.SELL
        order_type = OrderType.LIMIT if i % 3 == 0 else OrderType.MARKET
        price = book.mid_price if order_type is OrderType.LIMIT else None

        start = time.perf_counter()
        simulate_order_impact(book, side, py_rng.uniform(0.5, 200), order_type, price, rng=py_rng)
        times.append(time.perf_counter() - start)

    report(times, "simulations/sec")


def benchmark_depth(iterations: int = 2000) -> None:
    """Benchmark depth chart + imbalance (what the UI needs per frame)."""
    print("\n=== Depth Analytics Benchmark ===")

    rng = np.random.default_rng(11)
    book = generate_book(Venue.DERIBIT, "BTC-PERPETUAL", rng, levels=100)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        compute_depth(book.bids, book.asks)
        compute_imbalance(book.bids, book.asks)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    report(times, "frames/sec")
    print(f"  Max FPS possible: {1000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Orderbook Sim Performance Benchmark")
    print("=" * 60)

    benchmark_normalization()
    benchmark_delta_merge()
    benchmark_impact()
    benchmark_depth()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
