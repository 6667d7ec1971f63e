from .curve import Scalar
from .utils import binhash_to_scalar, keccak256, serialize_int, serialize_point


class Transcript:
    """Fiat-Shamir transcript: a keccak hash chain over every prover
    message. Challenges depend only on what was absorbed before them."""

    def __init__(self, label: bytes = b"plonkml"):
        self.state = keccak256(b"plonkml-transcript" + label)
        self.counter = 0

    def _absorb(self, label: bytes, data: bytes):
        self.state = keccak256(
            self.state + len(label).to_bytes(2, 'big') + label
            + len(data).to_bytes(4, 'big') + data
        )

    def hash_bytes(self, label: bytes, data: bytes):
        self._absorb(label, data)

    def hash_point(self, pt, label: bytes = b"point"):
        self._absorb(label, serialize_point(pt))

    def hash_scalar(self, x, label: bytes = b"scalar"):
        self._absorb(label, serialize_int(x))

    def squeeze(self, label: bytes = b"challenge") -> Scalar:
        self.counter += 1
        out = keccak256(self.state + label + self.counter.to_bytes(4, 'big'))
        self._absorb(b"squeeze", out)
        return binhash_to_scalar(out)
