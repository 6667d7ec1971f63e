from dataclasses import dataclass

from .curve import G1Point, Scalar
from .keys import FORMAT_VERSION

# Prover commitments, in transcript order
COMMITMENTS = ("A", "B", "C", "M", "Z", "PHI", "T1", "T2", "T3", "W_zeta", "W_zeta_omega")

# Polynomials opened at zeta, in the order they are batched
ZETA_EVALUATIONS = (
    "A", "B", "C",
    "QL", "QR", "QM", "QO", "QC",
    "S1", "S2", "S3",
    "Z",
    "QLK", "QTAG", "TTAG", "TIN", "TOUT",
    "M", "PHI",
    "T1", "T2", "T3",
)

# Polynomials opened at zeta * omega
SHIFTED_EVALUATIONS = ("Z", "PHI")


@dataclass
class Proof:
    digest: bytes
    commitments: dict[str, G1Point]
    evaluations: dict[str, Scalar]
    shifted_evaluations: dict[str, Scalar]
    version: int = FORMAT_VERSION

    def to_bytes(self) -> bytes:
        from .serialize import dump_proof
        return dump_proof(self)

    @classmethod
    def from_bytes(cls, data: bytes, expected_digest=None) -> "Proof":
        from .serialize import load_proof
        return load_proof(data, expected_digest)
