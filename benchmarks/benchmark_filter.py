"""
Benchmark filtering performance.

Tests the range filter, grid construction and outlier classifier at various
scales.
"""

import logging
import time

import numpy as np

from gsprune import PointSet, RangeParams, apply_range_filter, build_spatial_grid, classify_outliers

# Suppress logging for cleaner output
logging.getLogger("gsprune").setLevel(logging.WARNING)


def generate_points(n: int) -> PointSet:
    """Generate a clustered point set with logit opacities."""
    rng = np.random.default_rng(42)

    positions = rng.normal(0.0, 1.0, (n, 3)).astype(np.float32)
    scales = rng.uniform(-10.0, 1.0, (n, 3)).astype(np.float32)
    opacities = rng.normal(0.0, 2.0, n).astype(np.float32)
    opacities[0] = 2.0

    return PointSet(positions, scales, opacities)


def timed(fn, iterations: int, warmup: int = 2):
    for _ in range(warmup):
        fn()
    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        fn()
        times.append((time.perf_counter() - start) * 1000)
    return np.mean(times), np.std(times)


def benchmark_range_filter(n: int = 1_000_000, iterations: int = 50):
    """Benchmark the scale/opacity range filter."""
    print("\n" + "=" * 80)
    print(f"RANGE FILTER ({n:,} Gaussians, {iterations} iterations)")
    print("=" * 80)

    points = generate_points(n)
    params = RangeParams(-8.0, 0.0, 0.1)

    avg_time, std_time = timed(
        lambda: apply_range_filter(points, np.zeros(n, dtype=np.uint8), params), iterations
    )

    print(f"Time:       {avg_time:.3f} ms +/- {std_time:.3f} ms")
    print(f"Throughput: {n / (avg_time / 1000) / 1e6:.1f}M Gaussians/sec")


def benchmark_grid(n: int = 1_000_000, iterations: int = 10):
    """Benchmark grid hash construction."""
    print("\n" + "=" * 80)
    print(f"GRID BUILD ({n:,} Gaussians, {iterations} iterations)")
    print("=" * 80)

    points = generate_points(n)
    state = np.zeros(n, dtype=np.uint8)

    for radius in (0.01, 0.05, 0.2):
        avg_time, std_time = timed(lambda: build_spatial_grid(points.positions, state, radius), iterations)
        print(f"r={radius:<5}: {avg_time:8.2f} ms +/- {std_time:.2f} ms")


def benchmark_outliers(iterations: int = 5):
    """Benchmark the outlier classifier across sizes and parameters."""
    print("\n" + "=" * 80)
    print(f"OUTLIER CLASSIFIER ({iterations} iterations)")
    print("=" * 80)

    for n in [100_000, 500_000, 1_000_000]:
        points = generate_points(n)
        for k, radius in [(8, 0.05), (16, 0.1)]:
            avg_time, _ = timed(
                lambda: classify_outliers(points.positions, np.zeros(n, dtype=np.uint8), k, radius),
                iterations,
                warmup=1,
            )
            throughput = n / (avg_time / 1000) / 1e6
            print(f"N={n:>9,} k={k:<2} r={radius:<4}: {avg_time:8.2f} ms ({throughput:6.1f}M G/s)")


def main():
    """Run all benchmarks."""
    print("=" * 80)
    print("GSPRUNE FILTERING PERFORMANCE BENCHMARKS")
    print("=" * 80)

    benchmark_range_filter()
    benchmark_grid()
    benchmark_outliers()

    print("\n" + "=" * 80)
    print("ALL BENCHMARKS COMPLETED")
    print("=" * 80)


if __name__ == "__main__":
    main()
