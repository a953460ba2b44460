"""Exception hierarchy shared by the generator, inspector and calibration loop."""


class ChallengeError(Exception):
    """Base exception for challenge generation and calibration"""
    pass


class ConfigurationError(ChallengeError, ValueError):
    """Difficulty or generation parameters are out of range"""
    pass


class CircuitFormatError(ChallengeError, ValueError):
    """Circuit source text is not in the emitted dialect"""

    def __init__(self, message: str, line_no: int = None):
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)
        self.line_no = line_no


class CalibrationError(ChallengeError):
    """Base exception for the calibration loop"""
    pass


class CompilerUnavailableError(CalibrationError):
    """The external optimizing compiler cannot be executed"""
    pass


class CompilationError(CalibrationError):
    """The external compiler ran but rejected the circuit"""
    pass


class UnparseableReportError(CalibrationError):
    """The compiler report does not contain a non-linear constraint count"""
    pass


class SampleError(CalibrationError):
    """A calibration sample failed with an unexpected error (I/O, OS, ...)"""

    def __init__(self, index: int, seed: str, cause: BaseException):
        super().__init__(f"sample {index} (seed '{seed}') failed: {cause}")
        self.index = index
        self.seed = seed
