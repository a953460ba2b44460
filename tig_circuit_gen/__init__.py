"""Seeded, difficulty-tunable circom challenge generator for the TIG ZK challenge."""

from .difficulty import CircuitConfig, ScalingConstants, difficulty_to_config
from .generator import generate_challenge, generate_circom_code
from .calibrate import calculate_reducibility, run_calibration
from .errors import (
    ChallengeError, ConfigurationError, CircuitFormatError, CalibrationError,
    CompilerUnavailableError, CompilationError, UnparseableReportError, SampleError,
)

__version__ = "0.1.0"
