import logging
from dataclasses import dataclass
from functools import cache

import py_ecc.optimized_bn128 as b

from ..curve import FixedBase, G1Point, G2Point, Scalar, ec_lincomb
from ..poly import Basis, Polynomial
from ..utils import keccak256

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Setup:
    """KZG structured reference string in Lagrange form: the commitments
    [L_i(tau)]_1 to the Lagrange basis of one evaluation domain, plus
    [tau]_2 for the pairing check.

    ``generate`` derives tau from a public seed. That is a development
    setup: anyone who knows the seed can forge proofs.
    """

    group_order: int
    lagrange_g1: tuple
    X2: G2Point
    seed: str

    @classmethod
    def generate(cls, group_order: int, seed: str = "plonkml-dev-setup") -> "Setup":
        return _generate(cls, group_order, seed)

    # Encodes the KZG commitment that evaluates to the given values in the group
    def commit(self, values: Polynomial) -> G1Point:
        if values.basis == Basis.MONOMIAL:
            values = values.fft()
        assert values.basis == Basis.LAGRANGE
        assert len(values.values) == self.group_order, \
            "{} evaluations for a setup of order {}".format(len(values.values), self.group_order)
        return ec_lincomb(zip(self.lagrange_g1, values.values))


def _tau(seed: str, group_order: int) -> Scalar:
    counter = 0
    while True:
        h = keccak256(b"plonkml-setup" + seed.encode() + counter.to_bytes(4, 'big'))
        tau = Scalar(int.from_bytes(h, 'big'))
        # tau must stay off the evaluation domain
        if tau ** group_order != 1:
            return tau
        counter += 1


@cache
def _generate(cls, group_order: int, seed: str) -> Setup:
    tau = _tau(seed, group_order)
    roots = Scalar.roots_of_unity(group_order)
    # L_i(tau) = w^i * (tau^n - 1) / (n * (tau - w^i))
    factor = (tau ** group_order - 1) / group_order
    lagrange = [factor * root / (tau - root) for root in roots]
    base = FixedBase(b.G1)
    points = tuple(base.multiply(l) for l in lagrange)
    X2 = b.multiply(b.G2, tau.n)
    logger.info("Generated development setup for group order %d", group_order)
    return cls(group_order=group_order, lagrange_g1=points, X2=X2, seed=seed)
