"""
Binary artifact format.

    magic "PLML" | version u16 | kind u8 | section*

Each section is a u32 big-endian length followed by that many bytes. G1
points take 64 bytes, G2 points 128 bytes, scalars 32 bytes, all big-endian
affine coordinates.
"""

import json
import struct
from enum import IntEnum

from .compiler.program import Circuit
from .errors import CompileError, GraphError, ProvingKeyMismatchError, SerializationError, VersionMismatchError
from .keys import FIXED_COLUMNS, FORMAT_VERSION, ProvingKey, VerificationKey, fixed_polynomials
from .kzg.setup import Setup
from .proof import COMMITMENTS, SHIFTED_EVALUATIONS, ZETA_EVALUATIONS, Proof
from .utils import (
    deserialize_int,
    deserialize_point,
    deserialize_point_g2,
    serialize_int,
    serialize_point,
    serialize_point_g2,
)

MAGIC = b"PLML"


class Kind(IntEnum):
    CIRCUIT = 1
    PROVING_KEY = 2
    VERIFICATION_KEY = 3
    PROOF = 4


def _pack(kind: Kind, sections: list[bytes]) -> bytes:
    o = [MAGIC, struct.pack(">HB", FORMAT_VERSION, kind)]
    for section in sections:
        o.append(struct.pack(">I", len(section)))
        o.append(section)
    return b"".join(o)


class _Reader:
    def __init__(self, data: bytes, kind: Kind):
        if not isinstance(data, (bytes, bytearray)):
            raise SerializationError("artifact must be bytes")
        if len(data) < 7 or data[:4] != MAGIC:
            raise SerializationError("not a plonkml artifact")
        version, found = struct.unpack(">HB", data[4:7])
        if version != FORMAT_VERSION:
            raise VersionMismatchError("format version {}, expected {}".format(version, FORMAT_VERSION))
        if found != kind:
            raise VersionMismatchError("artifact kind {}, expected {}".format(found, int(kind)))
        self.data = bytes(data)
        self.offset = 7

    def section(self) -> bytes:
        if self.offset + 4 > len(self.data):
            raise SerializationError("truncated artifact")
        (length,) = struct.unpack(">I", self.data[self.offset:self.offset + 4])
        start = self.offset + 4
        if start + length > len(self.data):
            raise SerializationError("truncated artifact")
        self.offset = start + length
        return self.data[start:start + length]

    def chunks(self, size: int, count: int) -> list[bytes]:
        section = self.section()
        if len(section) != size * count:
            raise SerializationError("section of {} bytes, expected {}".format(len(section), size * count))
        return [section[i * size:(i + 1) * size] for i in range(count)]

    def finish(self):
        if self.offset != len(self.data):
            raise SerializationError("trailing bytes after artifact")


def _check_digest(digest: bytes, expected):
    if expected is not None and digest != expected:
        raise VersionMismatchError("artifact belongs to circuit {}, expected {}".format(
            digest.hex()[:16], expected.hex()[:16]))


def _decode(fn, item):
    try:
        return fn(item)
    except ValueError as e:
        raise SerializationError(str(e)) from e


def dump_circuit(circuit: Circuit) -> bytes:
    return _pack(Kind.CIRCUIT, [circuit.digest, circuit.canonical_json()])


def load_circuit(data: bytes, expected_digest=None) -> Circuit:
    reader = _Reader(data, Kind.CIRCUIT)
    digest = reader.section()
    payload = reader.section()
    reader.finish()
    _check_digest(digest, expected_digest)
    try:
        circuit = Circuit.from_dict(json.loads(payload))
    except (ValueError, KeyError, TypeError, GraphError, CompileError) as e:
        raise SerializationError("undecodable circuit: {}".format(e)) from e
    if circuit.digest != digest:
        raise SerializationError("circuit payload does not match its digest")
    return circuit


def dump_verification_key(vk: VerificationKey) -> bytes:
    return _pack(Kind.VERIFICATION_KEY, [
        vk.digest,
        struct.pack(">I", vk.group_order),
        json.dumps(vk.instance_layout, sort_keys=True).encode(),
        b"".join(serialize_point(vk.commitments[name]) for name in FIXED_COLUMNS),
        serialize_point_g2(vk.X2),
    ])


def load_verification_key(data: bytes, expected_digest=None) -> VerificationKey:
    reader = _Reader(data, Kind.VERIFICATION_KEY)
    digest = reader.section()
    _check_digest(digest, expected_digest)
    (group_order,) = struct.unpack(">I", reader.chunks(4, 1)[0])
    try:
        layout = json.loads(reader.section())
    except ValueError as e:
        raise SerializationError("undecodable instance layout") from e
    points = [_decode(deserialize_point, c) for c in reader.chunks(64, len(FIXED_COLUMNS))]
    X2 = _decode(deserialize_point_g2, reader.section())
    reader.finish()
    return VerificationKey(
        digest=digest,
        group_order=group_order,
        instance_layout=layout,
        commitments=dict(zip(FIXED_COLUMNS, points)),
        X2=X2,
    )


def dump_proving_key(pk: ProvingKey) -> bytes:
    setup = pk.setup
    return _pack(Kind.PROVING_KEY, [
        pk.digest,
        setup.seed.encode(),
        struct.pack(">I", setup.group_order),
        b"".join(serialize_point(pt) for pt in setup.lagrange_g1),
        serialize_point_g2(setup.X2),
        dump_verification_key(pk.vk),
    ])


def load_proving_key(data: bytes, circuit: Circuit, expected_digest=None) -> ProvingKey:
    reader = _Reader(data, Kind.PROVING_KEY)
    digest = reader.section()
    _check_digest(digest, expected_digest)
    if digest != circuit.digest:
        raise ProvingKeyMismatchError("proving key does not belong to this circuit")
    seed = _decode(bytes.decode, reader.section())
    (group_order,) = struct.unpack(">I", reader.chunks(4, 1)[0])
    lagrange = tuple(_decode(deserialize_point, c) for c in reader.chunks(64, group_order))
    X2 = _decode(deserialize_point_g2, reader.section())
    vk = load_verification_key(reader.section(), digest)
    reader.finish()
    setup = Setup(group_order=group_order, lagrange_g1=lagrange, X2=X2, seed=seed)
    return ProvingKey(digest=digest, setup=setup, fixed=fixed_polynomials(circuit), vk=vk)


def dump_proof(proof: Proof) -> bytes:
    return _pack(Kind.PROOF, [
        proof.digest,
        b"".join(serialize_point(proof.commitments[name]) for name in COMMITMENTS),
        b"".join(serialize_int(proof.evaluations[name]) for name in ZETA_EVALUATIONS),
        b"".join(serialize_int(proof.shifted_evaluations[name]) for name in SHIFTED_EVALUATIONS),
    ])


def load_proof(data: bytes, expected_digest=None) -> Proof:
    reader = _Reader(data, Kind.PROOF)
    digest = reader.section()
    _check_digest(digest, expected_digest)
    points = [_decode(deserialize_point, c) for c in reader.chunks(64, len(COMMITMENTS))]
    evaluations = [_decode(deserialize_int, c) for c in reader.chunks(32, len(ZETA_EVALUATIONS))]
    shifted = [_decode(deserialize_int, c) for c in reader.chunks(32, len(SHIFTED_EVALUATIONS))]
    reader.finish()
    return Proof(
        digest=digest,
        commitments=dict(zip(COMMITMENTS, points)),
        evaluations=dict(zip(ZETA_EVALUATIONS, evaluations)),
        shifted_evaluations=dict(zip(SHIFTED_EVALUATIONS, shifted)),
    )
