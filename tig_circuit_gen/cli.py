"""
cli.py

tig-tool: tooling for the TIG ZK circuit challenge.

Usage:
  tig-tool generate -s block_hash_123 -d 3 -o challenge.circom
  tig-tool calibrate -d 3 -n 20
  tig-tool inspect challenge.circom --inputs 1,2,3,4,5
"""

from __future__ import annotations
import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from .analysis import parse_circuit, circuit_stats, evaluate_witness
from .calibrate import CalibrationSettings, CircomCompiler, DEFAULT_THRESHOLD, run_calibration
from .difficulty import difficulty_to_config
from .errors import CircuitFormatError, CompilerUnavailableError, ConfigurationError, SampleError
from .generator import generate_challenge


# -----------------------------
# Sub-commands
# -----------------------------

def run_generate(args) -> int:
    print("Generating challenge...")
    print(f"  Seed: '{args.seed}'")
    print(f"  Difficulty: {args.difficulty}")

    config = difficulty_to_config(args.difficulty, power_maps=not args.no_power_map)
    circuit = generate_challenge(args.seed, config)

    Path(args.output).write_text(circuit.source, encoding="utf-8")
    print(f"Saved to {args.output}")
    print(f"  Constraints (target): {config.num_constraints}")
    print(f"  Distinct cached expressions: {len(circuit.cache)}")
    return 0


def run_calibrate(args) -> int:
    config = difficulty_to_config(args.difficulty)
    settings = CalibrationSettings(samples=args.samples, threshold=args.threshold)
    if args.workers:
        settings.workers = args.workers
    compiler = CircomCompiler(binary=args.circom)

    print("Running calibration protocol")
    print(f"  Target difficulty: {args.difficulty}")
    print(f"  Expected redundancy: {config.redundancy_ratio:.2f}")
    print(f"  Testing {settings.samples} samples with {settings.workers} worker(s)...")

    try:
        report = run_calibration(args.difficulty, settings, compiler, progress=not args.no_progress)
    except (CompilerUnavailableError, SampleError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(f"\nResults for tier {report.difficulty}")
    ok = len(report.results) - len(report.failures)
    print(f"  Samples: {ok} succeeded, {len(report.failures)} failed")
    for r in report.failures:
        print(f"    sample {r.index} (seed '{r.seed}'): {r.error}")
    if report.std_dev is None:
        print("FAIL: no sample produced an optimized constraint count.")
        return 1
    print(f"  Mean reducibility: {report.mean:.4f}")
    print(f"  Std dev (sigma):   {report.std_dev:.4f}")

    if report.consistent:
        print("PASS: this tier provides consistent difficulty.")
        return 0
    print(f"FAIL: std dev too high (>= {report.threshold}). Adjust generator params.")
    return 1


def run_inspect(args) -> int:
    source = Path(args.file).read_text(encoding="utf-8")
    parsed = parse_circuit(source)
    stats = circuit_stats(parsed)

    print(f"Template {parsed.template}: {stats.n_inputs} inputs, {stats.n_outputs} output(s)")
    print(f"  Signals: {stats.n_signals}")
    print(f"  Constraints: {stats.n_assignments} ({stats.non_linear} non-linear, {stats.linear} linear)")
    print(f"  Longest dependency chain: {stats.max_depth}")

    if args.inputs:
        values = [int(v) for v in args.inputs.split(",")]
        witness = evaluate_witness(parsed, values)
        for name in parsed.outputs:
            print(f"  {name} = {witness[name]}")
    return 0


# -----------------------------
# CLI
# -----------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="tig-tool", description="Tooling for the TIG ZK circuit challenge.")
    sub = ap.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a random challenge instance (participants).")
    gen.add_argument("-s", "--seed", required=True, help="Random seed string (e.g. a block hash).")
    gen.add_argument("-d", "--difficulty", type=int, default=1, help="Difficulty tier (delta).")
    gen.add_argument("-o", "--output", default="challenge.circom", help="Output circom path.")
    gen.add_argument("--no-power-map", action="store_true", help="Redundancy-only mode, no x^5 S-boxes.")
    gen.set_defaults(func=run_generate)

    cal = sub.add_parser("calibrate", help="Measure reducibility variance of a tier (admins).")
    cal.add_argument("-d", "--difficulty", type=int, required=True, help="Difficulty tier to test.")
    cal.add_argument("-n", "--samples", type=int, default=20, help="Number of random instances.")
    cal.add_argument("-j", "--workers", type=int, default=None, help="Parallel compiler processes.")
    cal.add_argument("--circom", default=os.environ.get("TIG_CIRCOM", "circom"), help="circom executable.")
    cal.add_argument("--threshold", type=float, default=DEFAULT_THRESHOLD, help="Max std dev for PASS.")
    cal.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    cal.set_defaults(func=run_calibrate)

    ins = sub.add_parser("inspect", help="Validate a challenge circuit and print its statistics.")
    ins.add_argument("file", help="Circom file in the challenge dialect.")
    ins.add_argument("--inputs", default=None, help="Comma-separated values for in[0..4].")
    ins.set_defaults(func=run_inspect)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (ConfigurationError, CircuitFormatError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"error: {e.filename or ''}: {e.strerror or e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
