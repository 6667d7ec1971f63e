from dataclasses import dataclass

import py_ecc.optimized_bn128 as b

from ..curve import G1Point, G2Point, Scalar, ec_lincomb
from ..poly import Basis, Polynomial


# Lagrange values of sum_i v^i * (P_i(X) - e_i) / (X - point). Each
# quotient has degree < n, so its values on the subgroup determine it.
def opening_quotient(polys: list[Polynomial], evals: list[Scalar], point: Scalar, v: Scalar) -> Polynomial:
    group_order = len(polys[0].values)
    roots = Scalar.roots_of_unity(group_order)
    combined = [0] * group_order
    power = Scalar(1)
    for poly, e in zip(polys, evals):
        assert poly.basis == Basis.LAGRANGE
        p, en = power.n, e.n
        for j, value in enumerate(poly.values):
            combined[j] += p * (value.n - en)
        power = power * v
    return Polynomial(
        Basis.LAGRANGE,
        [Scalar(c) / (root - point) for c, root in zip(combined, roots)],
    )


@dataclass
class BatchOpening:
    """Claim that every committed polynomial takes the listed value at
    ``point``, backed by one witness commitment."""

    point: Scalar
    commitments: list[G1Point]
    evaluations: list[Scalar]
    witness: G1Point

    # Terms of point * W + sum v^i C_i - (sum v^i e_i) G, each scaled by weight
    def terms(self, v: Scalar, weight: Scalar) -> list:
        o = [(self.witness, weight * self.point)]
        combined = Scalar(0)
        power = weight
        for commitment, evaluation in zip(self.commitments, self.evaluations):
            o.append((commitment, power))
            combined += power * evaluation
            power = power * v
        o.append((b.G1, -combined))
        return o


# Checks every opening with one pairing equation, combining them with
# powers of u:
#   e(sum u^j W_j, [tau]_2) == e(sum u^j (z_j W_j + F_j - E_j G), G2)
def verify_batch(X2: G2Point, openings: list[BatchOpening], v: Scalar, u: Scalar) -> bool:
    left = []
    right = []
    weight = Scalar(1)
    for opening in openings:
        left.append((opening.witness, weight))
        right.extend(opening.terms(v, weight))
        weight = weight * u
    return b.pairing(X2, ec_lincomb(left)) == b.pairing(b.G2, ec_lincomb(right))
