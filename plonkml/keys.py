import logging
from dataclasses import dataclass, field

from .compiler.compiler import (
    make_gate_polynomials,
    make_lookup_selectors,
    make_s_polynomials,
    make_table_polynomials,
)
from .compiler.program import Circuit
from .compiler.utils import Column
from .curve import G1Point, G2Point, Scalar
from .errors import ProvingKeyMismatchError
from .kzg.setup import Setup
from .parallel import parallel_map
from .poly import Polynomial

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

# Fixed columns, in the order they are committed, serialized and opened
FIXED_COLUMNS = (
    "QL", "QR", "QM", "QO", "QC",
    "S1", "S2", "S3",
    "QLK", "QTAG",
    "TTAG", "TIN", "TOUT",
)


@dataclass
class VerificationKey:
    """Everything the verifier needs: commitments to every fixed column,
    [tau]_2, and the layout of the public values."""

    digest: bytes
    group_order: int
    instance_layout: list[dict]
    commitments: dict[str, G1Point]
    X2: G2Point
    version: int = FORMAT_VERSION

    @property
    def public_count(self) -> int:
        count = 0
        for entry in self.instance_layout:
            size = 1
            for d in entry["shape"]:
                size *= d
            count += size
        return count

    # Generator of the evaluation domain
    @property
    def w(self) -> Scalar:
        return Scalar.root_of_unity(self.group_order)

    def to_bytes(self) -> bytes:
        from .serialize import dump_verification_key
        return dump_verification_key(self)

    @classmethod
    def from_bytes(cls, data: bytes, expected_digest=None) -> "VerificationKey":
        from .serialize import load_verification_key
        return load_verification_key(data, expected_digest)


@dataclass
class ProvingKey:
    digest: bytes
    setup: Setup
    fixed: dict[str, Polynomial] = field(repr=False)
    vk: VerificationKey

    @property
    def group_order(self) -> int:
        return self.setup.group_order

    def check_circuit(self, circuit: Circuit):
        if circuit.digest != self.digest:
            raise ProvingKeyMismatchError(
                "proving key belongs to circuit {}, not {}".format(
                    self.digest.hex()[:16], circuit.digest.hex()[:16]))

    def to_bytes(self) -> bytes:
        from .serialize import dump_proving_key
        return dump_proving_key(self)

    @classmethod
    def from_bytes(cls, data: bytes, circuit: Circuit, expected_digest=None) -> "ProvingKey":
        from .serialize import load_proving_key
        return load_proving_key(data, circuit, expected_digest)


def fixed_polynomials(circuit: Circuit) -> dict[str, Polynomial]:
    n = circuit.group_order
    QL, QR, QM, QO, QC = make_gate_polynomials(n, circuit.rows)
    S = make_s_polynomials(n, circuit.wires())
    QLK, QTAG = make_lookup_selectors(n, circuit.rows)
    TTAG, TIN, TOUT = make_table_polynomials(n, circuit.tables)
    return {
        "QL": QL, "QR": QR, "QM": QM, "QO": QO, "QC": QC,
        "S1": S[Column.LEFT], "S2": S[Column.RIGHT], "S3": S[Column.OUTPUT],
        "QLK": QLK, "QTAG": QTAG,
        "TTAG": TTAG, "TIN": TIN, "TOUT": TOUT,
    }


def keygen(circuit: Circuit, setup: Setup = None) -> tuple[ProvingKey, VerificationKey]:
    n = circuit.group_order
    if setup is None:
        setup = Setup.generate(n, circuit.run_args.srs_seed)
    if setup.group_order != n:
        raise ProvingKeyMismatchError(
            "setup covers group order {}, circuit needs {}".format(setup.group_order, n))

    fixed = fixed_polynomials(circuit)
    points = parallel_map(setup.commit, [fixed[name] for name in FIXED_COLUMNS],
                          circuit.run_args.num_workers)
    vk = VerificationKey(
        digest=circuit.digest,
        group_order=n,
        instance_layout=circuit.instance_layout(),
        commitments=dict(zip(FIXED_COLUMNS, points)),
        X2=setup.X2,
    )
    logger.info("Generated proving and verification keys")
    return ProvingKey(digest=circuit.digest, setup=setup, fixed=fixed, vk=vk), vk
