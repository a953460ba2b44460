import re

import pytest

from tig_circuit_gen.analysis import parse_circuit, evaluate_witness, check_witness, BN254_PRIME
from tig_circuit_gen.difficulty import CircuitConfig, difficulty_to_config
from tig_circuit_gen.errors import ConfigurationError
from tig_circuit_gen.generator import (
    ChaChaStream, ExpressionCache, Signature, generate_challenge, generate_circom_code,
)


def test_deterministic_generation():
    config = difficulty_to_config(1)
    code1 = generate_circom_code("test_seed", config)
    code2 = generate_circom_code("test_seed", config)
    assert code1 == code2


@pytest.mark.parametrize("a,b", [("seed_a", "seed_b"), ("block_1", "block_2"), ("", " ")])
def test_different_seeds_produce_different_code(a, b):
    config = difficulty_to_config(1)
    assert generate_circom_code(a, config) != generate_circom_code(b, config)


def test_structure_contains_basics():
    code = generate_circom_code("seed", difficulty_to_config(1))
    assert code.startswith("pragma circom 2.0.0;\n\ntemplate Challenge() {\n")
    assert code.count("signal input in[5];") == 1
    assert code.count("signal output out;") == 1
    assert "<==" in code
    assert code.endswith("    out <== s_999;\n}\ncomponent main = Challenge();\n")


def test_every_signal_assigned_once_before_use():
    parsed = parse_circuit(generate_circom_code("wellformed", difficulty_to_config(2)))
    assert len(parsed.inputs) == 5
    assert parsed.outputs == ["out"]
    assert len(parsed.assignments) == len(parsed.outputs) + len(parsed.intermediates)


def test_one_pool_entry_per_step():
    config = CircuitConfig(num_constraints=300, redundancy_ratio=0.3, max_depth=15, power_map_ratio=0.2)
    circuit = generate_challenge("pool", config)
    assert len(circuit.signals) == 5 + 300
    assert circuit.signals[:5] == [(f"in[{i}]", 0) for i in range(5)]
    assert [n for n, _ in circuit.signals[5:]] == [f"s_{i}" for i in range(300)]


@pytest.mark.parametrize("max_depth", [1, 2, 3, 4, 7, 20])
def test_tracked_depth_never_exceeds_max_depth(max_depth):
    config = CircuitConfig(num_constraints=800, redundancy_ratio=0.1, max_depth=max_depth, power_map_ratio=0.3)
    circuit = generate_challenge(f"depth_{max_depth}", config)
    assert max(d for _, d in circuit.signals) <= max_depth


def test_depth_reset_uses_first_two_inputs():
    config = CircuitConfig(num_constraints=200, redundancy_ratio=0.0, max_depth=1, power_map_ratio=0.0)
    code = generate_circom_code("reset", config)
    body = [l.strip() for l in code.splitlines() if re.match(r"\s+s_\d+ <==", l)]
    # depth 1 only allows operands drawn from the inputs; anything deeper resets
    for line in body:
        operands = re.findall(r"(in\[\d\]|s_\d+)", line.split("<==")[1])
        assert all(op.startswith("in[") for op in operands)


def test_zero_constraints_rejected():
    with pytest.raises(ConfigurationError):
        generate_circom_code("seed", difficulty_to_config(0))


def test_redundancy_only_mode_emits_no_sboxes():
    config = difficulty_to_config(2, power_maps=False)
    code = generate_circom_code("plain", config)
    assert "_sq" not in code
    assert "_quad" not in code


def test_sbox_heavy_config_unrolls_every_step():
    # Every step is a fresh x^5 or a redundant recomputation. Only step 0 can be
    # plain arithmetic (empty cache with a low draw), so redundant single-line
    # steps must repeat its expression.
    config = CircuitConfig(num_constraints=120, redundancy_ratio=0.5, max_depth=1000, power_map_ratio=0.5)
    code = generate_circom_code("sbox", config)
    s0_rhs = re.search(r"    s_0 <== (.+);", code).group(1)
    n_unrolled = 0
    for i in range(1, 120):
        rhs = re.search(rf"    s_{i} <== (.+);", code).group(1)
        if rhs.startswith(f"s_{i}_quad * "):
            assert f"signal s_{i}_sq;" in code
            assert f"s_{i}_quad <== s_{i}_sq * s_{i}_sq;" in code
            n_unrolled += 1
        else:
            assert rhs == s0_rhs
    assert n_unrolled > 0


def test_sboxes_compute_fifth_powers():
    config = CircuitConfig(num_constraints=150, redundancy_ratio=0.3, max_depth=12, power_map_ratio=0.3)
    code = generate_circom_code("fifth", config)
    parsed = parse_circuit(code)
    witness = evaluate_witness(parsed, [2, 3, 5, 7, 11])
    assert check_witness(parsed, witness)
    for m in re.finditer(r"(s_\d+) <== \1_quad \* (\S+);", code):
        name, base = m.group(1), m.group(2)
        assert witness[name] == pow(witness[base], 5, BN254_PRIME)


def test_chacha_stream_matches_reference_keystream():
    # ChaCha20 block 0 for the all-zero key and nonce
    rng = ChaChaStream(b"\x00" * 32)
    assert rng.next_u64() == int.from_bytes(bytes.fromhex("76b8e0ada0f13d90"), "little")


def test_chacha_stream_draws():
    a = ChaChaStream.from_seed("x")
    b = ChaChaStream.from_seed("x")
    draws_a = [a.random() for _ in range(2000)]
    assert draws_a == [b.random() for _ in range(2000)]
    assert all(0.0 <= v < 1.0 for v in draws_a)
    assert all(0 <= a.randbelow(7) < 7 for _ in range(1000))
    with pytest.raises(ValueError):
        a.randbelow(0)
    with pytest.raises(ValueError):
        ChaChaStream(b"short")


def test_signature_encoding():
    assert Signature("*", ("in[0]", "s_3")).encode() == "*|in[0]|s_3"
    assert Signature("POW5", ("s_9",)).encode() == "POW5|s_9"
    assert Signature("POW5", ("s_9",)).is_pow5


def test_expression_cache_last_writer_wins():
    cache = ExpressionCache()
    sig = Signature("+", ("in[0]", "in[1]"))
    cache.record(sig, "s_0")
    cache.record(Signature("POW5", ("in[2]",)), "s_1")
    cache.record(sig, "s_7")
    assert len(cache) == 2
    assert cache.snapshot() == {"+|in[0]|in[1]": "s_7", "POW5|in[2]": "s_1"}
    assert list(cache.snapshot()) == ["+|in[0]|in[1]", "POW5|in[2]"]
    rng = ChaChaStream.from_seed("cache")
    assert {cache.choose(rng) for _ in range(50)} <= {sig, Signature("POW5", ("in[2]",))}


def test_generated_cache_points_at_emitted_signals():
    config = CircuitConfig(num_constraints=300, redundancy_ratio=0.2, max_depth=15, power_map_ratio=0.3)
    circuit = generate_challenge("cache_names", config)
    assert circuit.cache
    for key, name in circuit.cache.items():
        op, *operands = key.split("|")
        if op == "POW5":
            assert f"    {name} <== {name}_quad * {operands[0]};\n" in circuit.source
        else:
            assert f"    {name} <== {operands[0]} {op} {operands[1]};\n" in circuit.source
