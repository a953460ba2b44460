"""
analysis.py

Inspector for challenge circuits in the emitted circom dialect.

Pipeline:
  Step 1: parse the line-oriented source into declarations and assignments,
      checking that every signal is declared once, assigned once, and assigned
      before it is used.

  Step 2: classify each assignment with SymPy: degree <= 1 is a linear constraint,
      anything else is a non-linear (R1CS multiplication) constraint.

  Step 3: optionally evaluate the witness over GF(p) for concrete inputs.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sympy import Symbol, Integer, Poly, Mul, Add

from .errors import CircuitFormatError


BN254_PRIME = 21888242871839275222246405745257275088548364400416034343698153186088801495617

_NAME = r"[A-Za-z_][A-Za-z0-9_]*(?:\[\d+\])?"
PRAGMA_RE = re.compile(r"^pragma circom \d+\.\d+\.\d+;$")
TEMPLATE_RE = re.compile(r"^template ([A-Za-z_][A-Za-z0-9_]*)\(\) \{$")
INPUT_RE = re.compile(r"^signal input ([A-Za-z_][A-Za-z0-9_]*)\[(\d+)\];$")
OUTPUT_RE = re.compile(rf"^signal output ({_NAME});$")
DECL_RE = re.compile(rf"^signal ({_NAME});$")
ASSIGN_RE = re.compile(rf"^({_NAME})\s*<==\s*({_NAME})(?:\s*([*+])\s*({_NAME}))?\s*;$")
MAIN_RE = re.compile(r"^component main = ([A-Za-z_][A-Za-z0-9_]*)\(\);$")


# -----------------------------
# Utilities (mod p arithmetic)
# -----------------------------

def modp(x: int, p: int) -> int:
    return int(x) % p


def addm(a: int, b: int, p: int) -> int:
    return (a + b) % p


def mulm(a: int, b: int, p: int) -> int:
    return (a * b) % p


# -----------------------------
# Parsed representation
# -----------------------------

@dataclass
class Assignment:
    target: str
    operands: Tuple[str, ...]
    op: Optional[str]  # None for a plain copy `a <== b`
    line_no: int


@dataclass
class ParsedCircuit:
    template: str
    inputs: List[str]
    outputs: List[str]
    intermediates: List[str] = field(default_factory=list)
    assignments: List[Assignment] = field(default_factory=list)

    @property
    def declared(self) -> List[str]:
        return self.inputs + self.outputs + self.intermediates


@dataclass
class CircuitStats:
    n_inputs: int
    n_outputs: int
    n_signals: int
    n_assignments: int
    linear: int
    non_linear: int
    max_depth: int


def parse_circuit(source: str) -> ParsedCircuit:
    template = None
    main_component = None
    pragma_seen = False
    closed = False
    inputs: List[str] = []
    outputs: List[str] = []
    intermediates: List[str] = []
    assignments: List[Assignment] = []
    declared: set = set()
    assigned: set = set()

    def declare(name: str, line_no: int):
        if name in declared:
            raise CircuitFormatError(f"signal '{name}' declared twice", line_no)
        declared.add(name)

    for line_no, raw in enumerate(source.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if not pragma_seen:
            if not PRAGMA_RE.match(line):
                raise CircuitFormatError("expected a 'pragma circom' line first", line_no)
            pragma_seen = True
            continue
        if template is None:
            m = TEMPLATE_RE.match(line)
            if not m:
                raise CircuitFormatError("expected a template declaration", line_no)
            template = m.group(1)
            continue
        if closed:
            m = MAIN_RE.match(line)
            if not m or main_component is not None:
                raise CircuitFormatError(f"unexpected text after template body: {line!r}", line_no)
            if m.group(1) != template:
                raise CircuitFormatError(f"main instantiates unknown template '{m.group(1)}'", line_no)
            main_component = m.group(1)
            continue
        if line == "}":
            closed = True
            continue

        m = INPUT_RE.match(line)
        if m:
            for i in range(int(m.group(2))):
                name = f"{m.group(1)}[{i}]"
                declare(name, line_no)
                inputs.append(name)
                assigned.add(name)
            continue
        m = OUTPUT_RE.match(line)
        if m:
            declare(m.group(1), line_no)
            outputs.append(m.group(1))
            continue
        m = DECL_RE.match(line)
        if m:
            declare(m.group(1), line_no)
            intermediates.append(m.group(1))
            continue
        m = ASSIGN_RE.match(line)
        if m:
            target, a, op, b = m.groups()
            if target not in declared:
                raise CircuitFormatError(f"assignment to undeclared signal '{target}'", line_no)
            if target in assigned:
                raise CircuitFormatError(f"signal '{target}' assigned twice", line_no)
            operands = (a,) if op is None else (a, b)
            for s in operands:
                if s not in assigned:
                    raise CircuitFormatError(f"signal '{s}' used before assignment", line_no)
            assigned.add(target)
            assignments.append(Assignment(target, operands, op, line_no))
            continue
        raise CircuitFormatError(f"unrecognized line: {line!r}", line_no)

    if not pragma_seen or template is None:
        raise CircuitFormatError("missing pragma or template header")
    if not closed:
        raise CircuitFormatError("template body is not closed")
    if main_component is None:
        raise CircuitFormatError("missing 'component main' instantiation")
    unassigned = [s for s in outputs + intermediates if s not in assigned]
    if unassigned:
        raise CircuitFormatError(f"{len(unassigned)} signal(s) never assigned, first: '{unassigned[0]}'")

    return ParsedCircuit(template, inputs, outputs, intermediates, assignments)


# -----------------------------
# Constraint classification (SymPy)
# -----------------------------

def _sym(name: str) -> Symbol:
    return Symbol(name)


def assignment_expr(a: Assignment):
    """RHS - LHS as a SymPy expression (the constraint polynomial == 0)."""
    args = [_sym(s) for s in a.operands]
    if a.op == "*":
        rhs = Mul(*args)
    elif a.op == "+":
        rhs = Add(*args)
    else:
        rhs = args[0]
    return rhs - _sym(a.target)


def is_non_linear(a: Assignment) -> bool:
    expr = assignment_expr(a)
    gens = sorted(expr.free_symbols, key=str)
    return Poly(expr, *gens).total_degree() > 1


def circuit_stats(parsed: ParsedCircuit) -> CircuitStats:
    depth: Dict[str, int] = {name: 0 for name in parsed.inputs}
    non_linear = 0
    for a in parsed.assignments:
        d = max(depth[s] for s in a.operands)
        if a.op is not None:
            d += 1
        depth[a.target] = d
        if is_non_linear(a):
            non_linear += 1

    return CircuitStats(
        n_inputs=len(parsed.inputs),
        n_outputs=len(parsed.outputs),
        n_signals=len(parsed.declared),
        n_assignments=len(parsed.assignments),
        linear=len(parsed.assignments) - non_linear,
        non_linear=non_linear,
        max_depth=max(depth.values()) if depth else 0,
    )


# -----------------------------
# Witness evaluation over GF(p)
# -----------------------------

def evaluate_witness(parsed: ParsedCircuit, inputs: Sequence[int],
                     prime: int = BN254_PRIME) -> Dict[str, int]:
    if len(inputs) != len(parsed.inputs):
        raise ValueError(f"expected {len(parsed.inputs)} inputs, got {len(inputs)}")
    values: Dict[str, int] = {name: modp(v, prime) for name, v in zip(parsed.inputs, inputs)}
    for a in parsed.assignments:
        vals = [values[s] for s in a.operands]
        if a.op == "*":
            values[a.target] = mulm(vals[0], vals[1], prime)
        elif a.op == "+":
            values[a.target] = addm(vals[0], vals[1], prime)
        else:
            values[a.target] = vals[0]
    return values


def check_witness(parsed: ParsedCircuit, values: Dict[str, int], prime: int = BN254_PRIME) -> bool:
    """Substitute a witness into every constraint polynomial; True if all vanish mod p."""
    for a in parsed.assignments:
        expr = assignment_expr(a)
        subs = {_sym(s): Integer(values[s]) for s in a.operands + (a.target,)}
        if modp(expr.subs(subs), prime) != 0:
            return False
    return True
