#!/usr/bin/env python3
"""
Analyze ElastiCache probe benchmark results.

Reads one or more results files written by run_benchmark.py and produces
per-phase latency charts and an optional CSV summary.

Usage:
    python -m elasticache_probe.benchmark.analyze_results --results-file results/benchmark_20260101_120000.json
    python -m elasticache_probe.benchmark.analyze_results --analyze-all results/ --output-csv summary.csv
"""

import json
import csv
import argparse
from pathlib import Path
from typing import Dict, List

import numpy as np
import matplotlib
matplotlib.use('Agg')  # non-interactive backend
import matplotlib.pyplot as plt

PHASES = ['connection', 'write', 'read']
COLORS = {'connection': '#3498db', 'write': '#e74c3c', 'read': '#27ae60'}


def load_runs(results_files: List[Path]) -> List[Dict]:
    """Successful runs from all files, in file order."""
    runs = []
    for results_file in results_files:
        with open(results_file, 'r') as f:
            data = json.load(f)
        runs.extend(r for r in data.get('runs', []) if r.get('success'))
    return runs


def phase_arrays(runs: List[Dict]) -> Dict[str, np.ndarray]:
    """Per-phase durations in milliseconds. Runs missing a phase are skipped for it."""
    return {
        phase: np.array([r[phase] * 1000 for r in runs if r.get(phase) is not None], dtype=float)
        for phase in PHASES
    }


def summarize(arrays: Dict[str, np.ndarray]) -> Dict[str, Dict[str, float]]:
    summary = {}
    for phase, values in arrays.items():
        if values.size == 0:
            continue
        summary[phase] = {
            'count': int(values.size),
            'mean_ms': float(np.mean(values)),
            'median_ms': float(np.median(values)),
            'p95_ms': float(np.percentile(values, 95)),
            'p99_ms': float(np.percentile(values, 99)),
            'min_ms': float(np.min(values)),
            'max_ms': float(np.max(values))
        }
    return summary


def plot_charts(arrays: Dict[str, np.ndarray], output_dir: Path) -> List[Path]:
    """Histogram per phase and a per-invocation timeline. Returns written paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    fig, axes = plt.subplots(1, len(PHASES), figsize=(15, 4))
    fig.suptitle('ElastiCache Probe - Phase Latency Distribution', fontsize=14, fontweight='bold')
    for ax, phase in zip(axes, PHASES):
        values = arrays[phase]
        ax.set_title(phase.capitalize(), fontsize=12)
        ax.set_xlabel('Latency (ms)', fontsize=11)
        ax.grid(axis='y', alpha=0.3)
        if values.size == 0:
            continue
        ax.hist(values, bins=min(30, max(5, values.size // 2)), color=COLORS[phase], edgecolor='black')
        ax.axvline(np.median(values), color='black', linestyle='--', linewidth=1,
                   label=f'median {np.median(values):.2f}ms')
        ax.legend(loc='upper right')
    path = output_dir / 'phase_histograms.png'
    fig.savefig(path, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    written.append(path)

    fig, ax = plt.subplots(figsize=(12, 5))
    for phase in PHASES:
        values = arrays[phase]
        if values.size:
            ax.plot(np.arange(values.size), values, marker='o', markersize=3,
                    label=phase, color=COLORS[phase])
    ax.set_xlabel('Invocation', fontsize=11)
    ax.set_ylabel('Latency (ms)', fontsize=11)
    ax.set_title('Phase Latency per Invocation', fontsize=12)
    ax.legend(loc='upper right')
    ax.grid(alpha=0.3)
    path = output_dir / 'phase_timeline.png'
    fig.savefig(path, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    written.append(path)

    return written


def export_csv(summary: Dict[str, Dict[str, float]], output_file: Path):
    """Export phase summary to CSV format."""
    with open(output_file, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['Phase', 'Metric', 'Value'])
        for phase, stats in summary.items():
            for metric, value in stats.items():
                writer.writerow([phase, metric, f"{value:.3f}" if isinstance(value, float) else value])


def main():
    parser = argparse.ArgumentParser(
        description='Analyze ElastiCache probe benchmark results'
    )
    parser.add_argument('--results-file', type=str,
                       help='Benchmark results JSON file')
    parser.add_argument('--analyze-all', type=str,
                       help='Directory containing multiple result files')
    parser.add_argument('--output-dir', type=str, default='results',
                       help='Directory for generated charts')
    parser.add_argument('--output-csv', type=str,
                       help='Output CSV file')

    args = parser.parse_args()

    if args.results_file:
        results_files = [Path(args.results_file)]
    elif args.analyze_all:
        results_files = sorted(Path(args.analyze_all).glob('benchmark_*.json'))
    else:
        parser.error('one of --results-file or --analyze-all is required')

    runs = load_runs(results_files)
    print(f"Loaded {len(runs)} successful runs from {len(results_files)} file(s)")
    if not runs:
        return

    arrays = phase_arrays(runs)
    summary = summarize(arrays)
    for phase, stats in summary.items():
        print(f"  {phase:<10} n={stats['count']:<5} mean {stats['mean_ms']:.2f}ms  "
              f"p95 {stats['p95_ms']:.2f}ms  p99 {stats['p99_ms']:.2f}ms")

    for path in plot_charts(arrays, Path(args.output_dir)):
        print(f"  Chart saved: {path}")

    if args.output_csv:
        export_csv(summary, Path(args.output_csv))
        print(f"  CSV saved: {args.output_csv}")


if __name__ == '__main__':
    main()
