"""
calibrate.py

Calibration protocol for a difficulty tier.

For each sample:
  1. generate a challenge with seed "<prefix>_<difficulty>_<i>"
  2. compile it with the reference optimizer (circom --r1cs --O1) in a private temp dir
  3. parse "non-linear constraints: N" from the compiler report
  4. eta = 1 - N / baseline, with baseline = num_constraints

The tier is consistent when the population standard deviation of eta is below
the threshold (0.05).
"""

from __future__ import annotations
import os
import re
import shutil
import subprocess
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
from tqdm.auto import tqdm

from .difficulty import CircuitConfig, difficulty_to_config
from .errors import (
    CalibrationError, CompilationError, CompilerUnavailableError, SampleError, UnparseableReportError,
)
from .generator import generate_circom_code


CONSTRAINT_COUNT_RE = re.compile(r"non-linear constraints:\s*(\d+)")
DEFAULT_THRESHOLD = 0.05


def calculate_reducibility(baseline: float, optimized: float) -> float:
    """
    Raw reducibility 1 - optimized/baseline.
    Negative when the optimizer increased the constraint count; never clamped.
    """
    if baseline <= 0:
        raise ValueError(f"baseline must be positive, got {baseline}")
    return 1.0 - (optimized / baseline)


def parse_constraint_count(report: str) -> int:
    m = CONSTRAINT_COUNT_RE.search(report)
    if not m:
        raise UnparseableReportError("compiler report has no 'non-linear constraints: <n>' line")
    return int(m.group(1))


# -----------------------------
# External optimizing compiler
# -----------------------------

@dataclass(frozen=True)
class CircomCompiler:
    binary: str = field(default_factory=lambda: os.environ.get("TIG_CIRCOM", "circom"))
    flags: Sequence[str] = ("--r1cs", "--O1")
    timeout: Optional[float] = 600.0

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def count_constraints(self, circuit_path: Path) -> int:
        circuit_path = Path(circuit_path)
        cmd = [self.binary, str(circuit_path), *self.flags, "-o", str(circuit_path.parent)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise CompilerUnavailableError(f"'{self.binary}' not found; install circom to run calibration") from e
        except subprocess.TimeoutExpired as e:
            raise CompilationError(f"'{self.binary}' timed out after {self.timeout}s on {circuit_path}") from e
        if result.returncode != 0:
            tail = (result.stderr or result.stdout).strip().splitlines()[-5:]
            raise CompilationError(f"'{self.binary}' exited with {result.returncode} on {circuit_path}: " + " | ".join(tail))
        return parse_constraint_count(result.stdout)


# -----------------------------
# Calibration loop
# -----------------------------

@dataclass
class CalibrationSettings:
    samples: int = 20
    workers: int = max(1, min(8, os.cpu_count() or 1))
    threshold: float = DEFAULT_THRESHOLD
    seed_prefix: str = "calib"


@dataclass
class SampleResult:
    index: int
    seed: str
    optimized: Optional[int] = None
    eta: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CalibrationReport:
    difficulty: int
    config: CircuitConfig
    threshold: float
    results: List[SampleResult] = field(default_factory=list)
    mean: Optional[float] = None
    std_dev: Optional[float] = None

    @property
    def failures(self) -> List[SampleResult]:
        return [r for r in self.results if not r.ok]

    @property
    def consistent(self) -> bool:
        return self.std_dev is not None and self.std_dev < self.threshold


def sample_seed(prefix: str, difficulty: int, index: int) -> str:
    return f"{prefix}_{difficulty}_{index}"


def run_sample(index: int, seed: str, config: CircuitConfig, compiler) -> SampleResult:
    code = generate_circom_code(seed, config)
    with tempfile.TemporaryDirectory(prefix=f"tig_calib_{index}_") as tmp:
        path = Path(tmp) / f"challenge_{index}.circom"
        path.write_text(code, encoding="utf-8")
        optimized = compiler.count_constraints(path)
    eta = calculate_reducibility(float(config.num_constraints), float(optimized))
    return SampleResult(index=index, seed=seed, optimized=optimized, eta=eta)


def summarize(report: CalibrationReport) -> CalibrationReport:
    etas = np.array([r.eta for r in report.results if r.ok], dtype=np.float64)
    if etas.size:
        report.mean = float(etas.mean())
        report.std_dev = float(etas.std())  # population (ddof=0)
    return report


def run_calibration(difficulty: int, settings: CalibrationSettings = None,
                    compiler=None, progress: bool = True) -> CalibrationReport:
    settings = settings or CalibrationSettings()
    compiler = compiler or CircomCompiler()
    if settings.samples < 1:
        raise ValueError("calibration needs at least one sample")
    config = difficulty_to_config(difficulty)
    if config.num_constraints < 1:
        raise ValueError(f"difficulty {difficulty} produces no constraints to calibrate")
    if not compiler.available():
        raise CompilerUnavailableError(f"'{getattr(compiler, 'binary', compiler)}' not found; install circom to run calibration")

    report = CalibrationReport(difficulty=difficulty, config=config, threshold=settings.threshold)
    bar = tqdm(total=settings.samples, desc=f"tier {difficulty}", disable=not progress)
    results: List[SampleResult] = []

    with ThreadPoolExecutor(max_workers=max(1, settings.workers)) as pool:
        futures = {}
        for i in range(settings.samples):
            seed = sample_seed(settings.seed_prefix, difficulty, i)
            futures[pool.submit(run_sample, i, seed, config, compiler)] = (i, seed)
        try:
            for fut in as_completed(futures):
                i, seed = futures[fut]
                try:
                    results.append(fut.result())
                except CompilerUnavailableError:
                    raise
                except CalibrationError as e:
                    tqdm.write(f"Sample {i} (seed '{seed}') failed: {e}")
                    results.append(SampleResult(index=i, seed=seed, error=str(e)))
                except Exception as e:
                    raise SampleError(i, seed, e) from e
                bar.update(1)
        except (CompilerUnavailableError, SampleError):
            # stop queued samples; running ones finish before the pool exits
            for fut in futures:
                fut.cancel()
            raise
        finally:
            bar.close()

    report.results = sorted(results, key=lambda r: r.index)
    return summarize(report)
