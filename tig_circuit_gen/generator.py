"""
generator.py

The generator G(seed, theta) -> circom source.

Pipeline:
  1. Seeding: SHA-256(seed) keys a ChaCha20 keystream, so the same seed always
     reproduces the same circuit on any machine.

  2. Expansion: walk a growing pool of signals. Each step draws one uniform value
     and either
       * re-emits a cached expression (redundancy, costs as much text as the original),
       * emits an unrolled x^5 S-box (x^2, x^4, x^4*x), or
       * emits a fresh a*b / a+b, resetting to in[0], in[1] once max_depth is hit.

  3. Serialization: fixed header, the constraint lines, `out` wired to the last signal.
"""

from __future__ import annotations
import hashlib
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from .difficulty import CircuitConfig
from .errors import ConfigurationError


NUM_INPUTS = 5
POW5 = "POW5"
POW5_DEPTH = 3  # x^2, x^4, x^5


# -----------------------------
# Deterministic CSPRNG (ChaCha20 keystream)
# -----------------------------

class ChaChaStream:
    """
    Pseudo-random draws taken from the ChaCha20 keystream keyed by a 32-byte seed.
    Owned by exactly one generation call.
    """

    BLOCK_BYTES = 4096

    def __init__(self, key: bytes):
        if len(key) != 32:
            raise ValueError(f"ChaCha20 key must be 32 bytes, got {len(key)}")
        # 16-byte nonce: 4-byte block counter followed by a 12-byte nonce, all zero
        cipher = Cipher(algorithms.ChaCha20(key, b"\x00" * 16), mode=None)
        self._encryptor = cipher.encryptor()
        self._buf = b""
        self._pos = 0

    @classmethod
    def from_seed(cls, seed: str) -> "ChaChaStream":
        return cls(hashlib.sha256(seed.encode("utf-8")).digest())

    def _take(self, n: int) -> bytes:
        if self._pos + n > len(self._buf):
            rest = self._buf[self._pos:]
            self._buf = rest + self._encryptor.update(b"\x00" * self.BLOCK_BYTES)
            self._pos = 0
        out = self._buf[self._pos:self._pos + n]
        self._pos += n
        return out

    def next_u64(self) -> int:
        return int.from_bytes(self._take(8), "little")

    def random(self) -> float:
        """Uniform float in [0, 1) with 53 bits of precision."""
        return (self.next_u64() >> 11) * (1.0 / (1 << 53))

    def randbelow(self, n: int) -> int:
        """Uniform integer in [0, n), unbiased by rejection."""
        if n <= 0:
            raise ValueError("randbelow() requires n > 0")
        limit = ((1 << 64) // n) * n
        while True:
            u = self.next_u64()
            if u < limit:
                return u % n

    def coin(self) -> bool:
        return self.random() < 0.5


# -----------------------------
# Expression signatures / cache
# -----------------------------

@dataclass(frozen=True)
class Signature:
    op: str
    operands: Tuple[str, ...]

    def encode(self) -> str:
        return "|".join((self.op,) + self.operands)

    @property
    def is_pow5(self) -> bool:
        return self.op == POW5


class ExpressionCache:
    """
    Canonical signature -> name of the signal that last computed it.
    Entries are overwritten on collision and never removed. Selection enumerates
    signatures in first-insertion order.
    """

    def __init__(self):
        self._names: Dict[str, str] = {}
        self._order: List[Signature] = []

    def __len__(self) -> int:
        return len(self._order)

    def record(self, sig: Signature, name: str) -> None:
        key = sig.encode()
        if key not in self._names:
            self._order.append(sig)
        self._names[key] = name

    def snapshot(self) -> Dict[str, str]:
        """Encoded signature -> signal name, in enumeration order."""
        return {key: self._names[key] for key in (sig.encode() for sig in self._order)}

    def choose(self, rng: ChaChaStream) -> Signature:
        return self._order[rng.randbelow(len(self._order))]


# -----------------------------
# Builder
# -----------------------------

@dataclass
class ChallengeCircuit:
    seed: str
    config: CircuitConfig
    source: str
    signals: List[Tuple[str, int]]  # final pool: (name, tracked depth)
    cache: Dict[str, str]  # final expression cache: encoded signature -> signal name


@dataclass
class ChallengeBuilder:
    seed: str
    config: CircuitConfig
    lines: List[str] = field(default_factory=list)
    signals: List[Tuple[str, int]] = field(default_factory=list)
    cache: ExpressionCache = field(default_factory=ExpressionCache)

    def __post_init__(self):
        self.rng = ChaChaStream.from_seed(self.seed)

    def emit(self, line: str) -> None:
        self.lines.append(f"    {line}\n")

    def emit_pow5(self, name: str, base: str) -> None:
        # Unrolled into quadratic constraints: x^2, x^4, x^4 * x
        var_sq = f"{name}_sq"
        var_quad = f"{name}_quad"
        self.emit(f"signal {var_sq};")
        self.emit(f"{var_sq} <== {base} * {base};")
        self.emit(f"signal {var_quad};")
        self.emit(f"{var_quad} <== {var_sq} * {var_sq};")
        self.emit(f"{name} <== {var_quad} * {base};")

    def emit_binary(self, name: str, op: str, a: str, b: str) -> None:
        self.emit(f"{name} <== {a} {op} {b};")

    def pick(self) -> Tuple[str, int]:
        return self.signals[self.rng.randbelow(len(self.signals))]

    def step_redundant(self, name: str) -> None:
        sig = self.cache.choose(self.rng)
        if sig.is_pow5:
            # Inefficient reuse: recompute the whole chain
            self.emit_pow5(name, sig.operands[0])
        else:
            self.emit_binary(name, sig.op, sig.operands[0], sig.operands[1])
        self.signals.append((name, 0))

    def step_pow5(self, name: str) -> None:
        base, depth = self.pick()
        if depth + POW5_DEPTH > self.config.max_depth:
            base, depth = "in[0]", 0
        self.emit_pow5(name, base)
        self.cache.record(Signature(POW5, (base,)), name)
        self.signals.append((name, depth + POW5_DEPTH))

    def step_arithmetic(self, name: str) -> None:
        op = "*" if self.rng.coin() else "+"
        s1, d1 = self.pick()
        s2, d2 = self.pick()
        new_depth = max(d1, d2) + 1
        if new_depth > self.config.max_depth:
            s1, s2, new_depth = "in[0]", "in[1]", 1
        self.emit_binary(name, op, s1, s2)
        self.cache.record(Signature(op, (s1, s2)), name)
        self.signals.append((name, new_depth))

    def build(self) -> ChallengeCircuit:
        cfg = self.config
        if cfg.num_constraints < 1:
            raise ConfigurationError("num_constraints must be at least 1 to wire the output signal")

        self.lines.append("pragma circom 2.0.0;\n\n")
        self.lines.append("template Challenge() {\n")
        self.emit(f"signal input in[{NUM_INPUTS}];")
        self.emit("signal output out;")
        self.signals.extend((f"in[{i}]", 0) for i in range(NUM_INPUTS))

        # an S-box alone is POW5_DEPTH deep; shallower tiers only get arithmetic
        pow5_enabled = cfg.max_depth >= POW5_DEPTH
        for i in range(cfg.num_constraints):
            name = f"s_{i}"
            self.emit(f"signal {name};")
            r = self.rng.random()
            if r < cfg.redundancy_ratio and len(self.cache) > 0:
                self.step_redundant(name)
            elif pow5_enabled and cfg.redundancy_ratio <= r < cfg.redundancy_ratio + cfg.power_map_ratio:
                self.step_pow5(name)
            else:
                self.step_arithmetic(name)

        self.emit(f"out <== s_{cfg.num_constraints - 1};")
        self.lines.append("}\n")
        self.lines.append("component main = Challenge();\n")

        return ChallengeCircuit(
            seed=self.seed,
            config=cfg,
            source="".join(self.lines),
            signals=list(self.signals),
            cache=self.cache.snapshot(),
        )


def generate_challenge(seed: str, config: CircuitConfig) -> ChallengeCircuit:
    return ChallengeBuilder(seed=seed, config=config).build()


def generate_circom_code(seed: str, config: CircuitConfig) -> str:
    """Deterministic: identical (seed, config) always yields byte-identical source."""
    return generate_challenge(seed, config).source
