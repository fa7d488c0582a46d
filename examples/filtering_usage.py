"""
Example: interactive Gaussian splat pruning.

Demonstrates how to use a gsprune FilterSession for:
- One-shot scale and opacity filtering
- Grouping a slider drag into one undo entry
- Outlier removal
- Undo, redo and reset
- Driving a chunked pass from a host loop
"""

import logging

import numpy as np
from gsply import GSData

from gsprune import FilterParams, FilterSession, OutlierParams, PointSet, RangeParams

# Configure logging to see filtering statistics
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def generate_sample_data(n: int = 20000) -> GSData:
    """Generate a splat cloud with a dense core, floaters and oversized splats."""
    rng = np.random.default_rng(42)

    n_noise = n // 50
    core = rng.normal(0.0, 0.3, (n - n_noise, 3))
    floaters = rng.uniform(-5.0, 5.0, (n_noise, 3))
    means = np.concatenate([core, floaters]).astype(np.float32)

    quats = rng.standard_normal((n, 4)).astype(np.float32)
    quats = quats / np.linalg.norm(quats, axis=1, keepdims=True)
    scales = rng.uniform(-9.0, -3.0, (n, 3)).astype(np.float32)
    scales[rng.choice(n, size=n // 100, replace=False)] = 1.5  # Oversized splats
    opacities = rng.normal(0.0, 2.5, n).astype(np.float32)  # Logit-encoded, as in PLY files
    opacities[0] = 2.0
    sh0 = rng.random((n, 3), dtype=np.float32)

    return GSData(means=means, quats=quats, scales=scales, opacities=opacities, sh0=sh0, shN=None)


def report(points: PointSet, label: str):
    print(f"{label:<32} visible {points.num_visible:>6} / {len(points)}")


def example_1_one_shot():
    """Example 1: Scale and opacity filters as single undo entries."""
    print("\n" + "=" * 70)
    print("EXAMPLE 1: One-shot filters")
    print("=" * 70)

    points = PointSet.from_gsdata(generate_sample_data())
    session = FilterSession(points)
    print(f"Opacity encoding: {points.opacity_encoding}")

    session.apply("scale", min_scale=-12.0, max_scale=0.0)
    report(points, "After scale <= 0.0")

    session.apply("opacity", threshold=0.1)
    report(points, "After opacity >= 0.1")

    session.history.undo()
    report(points, "Undo opacity")


def example_2_slider_drag():
    """Example 2: A slider drag recorded as one undo entry."""
    print("\n" + "=" * 70)
    print("EXAMPLE 2: Slider drag")
    print("=" * 70)

    points = PointSet.from_gsdata(generate_sample_data())
    session = FilterSession(points)

    session.begin("opacity")
    for threshold in np.linspace(0.05, 0.5, 10):
        session.preview("opacity", threshold=float(threshold))
    session.commit("opacity")

    report(points, "After drag to 0.5")
    print(f"History: {session.history.names}")

    session.history.undo()
    report(points, "Undo drag")


def example_3_outliers():
    """Example 3: Outlier removal, re-run with different parameters."""
    print("\n" + "=" * 70)
    print("EXAMPLE 3: Outlier removal")
    print("=" * 70)

    points = PointSet.from_gsdata(generate_sample_data())
    session = FilterSession(points)

    session.apply("outlier", k=8, radius=0.05)
    report(points, "k=8, r=0.05")

    # Re-running replaces the previous result, it does not stack
    session.apply("outlier", k=4, radius=0.2)
    report(points, "k=4, r=0.2")

    session.reset()
    report(points, "Reset")

    session.history.undo()
    report(points, "Undo reset")


def example_4_cooperative():
    """Example 4: Drive a chunked pass from a host frame loop."""
    print("\n" + "=" * 70)
    print("EXAMPLE 4: Cooperative pass")
    print("=" * 70)

    points = PointSet.from_gsdata(generate_sample_data(200_000))
    session = FilterSession(points, chunk_size=16384)

    params = FilterParams(RangeParams(max_scale=0.0), OutlierParams(k=8, radius=0.05))
    handle = session.apply_preview(params, cooperative=True)

    frames = 0
    while handle.step():
        frames += 1  # Host renders a frame here
    result = handle.result()

    print(f"Frames while classifying: {frames}")
    print(f"Range filter removed:     {result.range_deleted}")
    print(f"Outliers removed:         {result.outlier.deleted}")
    report(points, "Final")


def main():
    """Run all examples."""
    print("\n" + "=" * 70)
    print("GSPRUNE FILTERING EXAMPLES")
    print("=" * 70)

    example_1_one_shot()
    example_2_slider_drag()
    example_3_outliers()
    example_4_cooperative()

    print("\n" + "=" * 70)
    print("ALL EXAMPLES COMPLETED")
    print("=" * 70)


if __name__ == "__main__":
    main()
