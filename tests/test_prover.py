import dataclasses

import numpy as np
import py_ecc.optimized_bn128 as b
import pytest

import plonkml
from plonkml import ProvingKeyMismatchError, RejectReason, RunArgs, Tensor
from plonkml.curve import Scalar
from plonkml.proof import COMMITMENTS, ZETA_EVALUATIONS
from plonkml.verifier import Verifier
from plonkml.witness import generate_witness

from conftest import B, W, X


def reference_output():
    return np.maximum(X @ W + B, 0)


def tampered(proof, **changes):
    return dataclasses.replace(proof, **changes)


def test_prove_then_verify(compiled, proved):
    circuit, pk, vk = compiled
    proof, outputs = proved
    assert plonkml.verify(vk, proof, outputs)

    (out,) = outputs
    assert out.scale == 8
    expected = Tensor.quantize(reference_output(), 8, 16)
    assert np.allclose(out.dequantize(), expected.dequantize(), atol=2.0 / (1 << 8))
    assert out.to_list() == [90, 0]


def test_verify_accepts_integer_arrays(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    assert plonkml.verify(vk, proof, [np.array(outputs[0].to_list())])


def test_changed_public_output_is_rejected(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    for i in range(2):
        values = outputs[0].to_list()
        values[i] += 1
        result = plonkml.verify_proof(vk, proof, [Tensor(values, 8)])
        assert not result
        assert result.reason is RejectReason.COMMITMENT_MISMATCH


def test_wrong_public_shape_or_scale_is_rejected(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    assert not plonkml.verify(vk, proof, [Tensor(outputs[0].to_list(), 7)])
    assert not plonkml.verify(vk, proof, [Tensor([90], 8)])
    assert not plonkml.verify(vk, proof, [])
    assert not plonkml.verify(vk, proof, [np.array([0.5, 0.0])])


def test_altered_evaluation_is_rejected(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    for name in ("A", "QM", "PHI", "T3"):
        evaluations = dict(proof.evaluations)
        evaluations[name] = evaluations[name] + 1
        assert not plonkml.verify(vk, tampered(proof, evaluations=evaluations), outputs)
    shifted = dict(proof.shifted_evaluations)
    shifted["Z"] = shifted["Z"] + 1
    assert not plonkml.verify(vk, tampered(proof, shifted_evaluations=shifted), outputs)


def test_swapped_commitment_is_rejected(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    commitments = dict(proof.commitments)
    commitments["A"], commitments["B"] = commitments["B"], commitments["A"]
    assert not plonkml.verify(vk, tampered(proof, commitments=commitments), outputs)

    commitments = dict(proof.commitments)
    commitments["W_zeta"] = b.G1
    result = plonkml.verify_proof(vk, tampered(proof, commitments=commitments), outputs)
    assert not result


def test_off_curve_point_is_malformed(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    commitments = dict(proof.commitments)
    commitments["Z"] = (b.FQ(1), b.FQ(1), b.FQ(1))
    result = plonkml.verify_proof(vk, tampered(proof, commitments=commitments), outputs)
    assert result.reason is RejectReason.MALFORMED_PROOF

    commitments = dict(proof.commitments)
    del commitments["M"]
    result = plonkml.verify_proof(vk, tampered(proof, commitments=commitments), outputs)
    assert result.reason is RejectReason.MALFORMED_PROOF

    evaluations = dict(proof.evaluations)
    evaluations["C"] = 5
    result = plonkml.verify_proof(vk, tampered(proof, evaluations=evaluations), outputs)
    assert result.reason is RejectReason.MALFORMED_PROOF

    assert plonkml.verify_proof(vk, "not a proof", outputs).reason is RejectReason.MALFORMED_PROOF


def test_proving_is_deterministic(compiled, proved):
    circuit, pk, _ = compiled
    proof, outputs = proved
    again, again_outputs = plonkml.prove(circuit, pk, [X])
    assert again.to_bytes() == proof.to_bytes()
    assert again_outputs == outputs


def test_key_from_another_compilation(run_args, relu_graph, compiled, proved):
    circuit, pk, _ = compiled
    proof, outputs = proved
    other_args = RunArgs(scale=7, bits=16, lookup_bits=8)
    other_circuit, other_pk, other_vk = plonkml.compile(relu_graph(), other_args)
    assert other_vk.digest != circuit.digest

    result = plonkml.verify_proof(other_vk, proof, [np.array(outputs[0].to_list())])
    assert not result
    assert result.reason is RejectReason.VERSION_MISMATCH

    with pytest.raises(ProvingKeyMismatchError):
        plonkml.prove(circuit, other_pk, [X])


def test_compile_accepts_a_graph_description(relu_graph, run_args, compiled):
    circuit, _, vk = compiled
    again, _, again_vk = plonkml.compile(relu_graph().to_dict(), run_args)
    assert again.digest == circuit.digest
    assert again_vk.commitments.keys() == vk.commitments.keys()
    assert all(b.eq(again_vk.commitments[k], vk.commitments[k]) for k in vk.commitments)


def test_verifier_checks_the_instance_count(compiled, proved):
    circuit, _, vk = compiled
    proof, outputs = proved
    verifier = Verifier(vk)
    assert verifier.verify(proof, outputs[0].to_list())
    assert verifier.verify(proof, [90]).reason is RejectReason.MALFORMED_PROOF
    assert verifier.verify(proof, [90.0, 0]).reason is RejectReason.MALFORMED_PROOF


def test_proof_shape(proved):
    proof, _ = proved
    assert set(proof.commitments) == set(COMMITMENTS)
    assert set(proof.evaluations) == set(ZETA_EVALUATIONS)
    assert all(isinstance(v, Scalar) for v in proof.evaluations.values())
    assert proof.version == plonkml.keys.FORMAT_VERSION


def test_witness_outputs_match_the_proof(compiled, proved):
    circuit, _, _ = compiled
    _, outputs = proved
    witness = generate_witness(circuit, [X])
    assert witness.outputs == outputs
    assert witness.instances == outputs[0].to_list()
