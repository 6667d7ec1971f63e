import struct

import py_ecc.optimized_bn128 as b
import pytest

import plonkml
from plonkml import Circuit, Proof, ProvingKey, SerializationError, VerificationKey, VersionMismatchError
from plonkml.serialize import MAGIC
from plonkml.verifier import RejectReason

from conftest import X


def with_version(blob: bytes, version: int) -> bytes:
    return blob[:4] + struct.pack(">H", version) + blob[6:]


def test_circuit_round_trip(compiled):
    circuit, _, _ = compiled
    blob = circuit.to_bytes()
    assert blob.startswith(MAGIC)
    again = Circuit.from_bytes(blob, expected_digest=circuit.digest)
    assert again.digest == circuit.digest
    assert again.rows == circuit.rows
    assert [t.key for t in again.tables] == [t.key for t in circuit.tables]
    assert again.run_args == circuit.run_args


def test_verification_key_round_trip(compiled, proved):
    circuit, _, vk = compiled
    proof, outputs = proved
    again = VerificationKey.from_bytes(vk.to_bytes(), expected_digest=circuit.digest)
    assert again.digest == vk.digest
    assert again.group_order == vk.group_order
    assert again.instance_layout == vk.instance_layout
    assert all(b.eq(again.commitments[k], vk.commitments[k]) for k in vk.commitments)
    assert plonkml.verify(again, proof, outputs)


def test_proof_round_trip(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    blob = proof.to_bytes()
    again = Proof.from_bytes(blob)
    assert again.to_bytes() == blob
    assert again.evaluations == proof.evaluations
    assert plonkml.verify(vk, again, outputs)
    # verification also takes the raw bytes
    assert plonkml.verify(vk, blob, outputs)


def test_proving_key_round_trip(compiled, proved):
    circuit, pk, _ = compiled
    proof, _ = proved
    again = ProvingKey.from_bytes(pk.to_bytes(), circuit)
    assert again.digest == pk.digest
    assert again.setup.seed == pk.setup.seed
    assert b.eq(again.setup.lagrange_g1[3], pk.setup.lagrange_g1[3])
    reproved, _ = plonkml.prove(circuit, again, [X])
    assert reproved.to_bytes() == proof.to_bytes()


def test_version_mismatch(compiled, proved):
    circuit, _, vk = compiled
    proof, outputs = proved
    with pytest.raises(VersionMismatchError):
        VerificationKey.from_bytes(with_version(vk.to_bytes(), 2))
    with pytest.raises(VersionMismatchError):
        VerificationKey.from_bytes(vk.to_bytes(), expected_digest=bytes(32))
    with pytest.raises(VersionMismatchError):
        Circuit.from_bytes(with_version(circuit.to_bytes(), 0))
    # an artifact of another kind
    with pytest.raises(VersionMismatchError):
        VerificationKey.from_bytes(proof.to_bytes())
    result = plonkml.verify_proof(vk, with_version(proof.to_bytes(), 9), outputs)
    assert result.reason is RejectReason.VERSION_MISMATCH


def test_undecodable_bytes(compiled, proved):
    _, _, vk = compiled
    proof, outputs = proved
    blob = proof.to_bytes()
    with pytest.raises(SerializationError):
        Proof.from_bytes(b"nope" + blob[4:])
    with pytest.raises(SerializationError):
        Proof.from_bytes(blob[:-1])
    with pytest.raises(SerializationError):
        Proof.from_bytes(blob + b"\x00")
    with pytest.raises(SerializationError):
        VerificationKey.from_bytes(vk.to_bytes()[:40])

    # the first commitment moved off the curve
    start = 7 + 4 + 32 + 4
    broken = blob[:start + 63] + bytes([blob[start + 63] ^ 1]) + blob[start + 64:]
    with pytest.raises(SerializationError):
        Proof.from_bytes(broken)
    assert plonkml.verify_proof(vk, broken, outputs).reason is RejectReason.MALFORMED_PROOF


def test_circuit_payload_must_match_its_digest(compiled):
    circuit, _, _ = compiled
    blob = bytearray(circuit.to_bytes())
    # flip a byte inside the JSON payload, keeping it valid JSON
    i = blob.index(b'"public_count":')
    blob[i + len(b'"public_count":')] = ord("3")
    with pytest.raises(SerializationError):
        Circuit.from_bytes(bytes(blob))
