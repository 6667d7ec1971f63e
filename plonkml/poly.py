import operator
from enum import Enum

from .curve import Scalar


class Basis(Enum):
    LAGRANGE = 1
    MONOMIAL = 2
    EXTENDED_LAGRANGE = 3
    EXTENDED_MONOMIAL = 4


EVALUATION_BASES = (Basis.LAGRANGE, Basis.EXTENDED_LAGRANGE)
COEFFICIENT_BASES = (Basis.MONOMIAL, Basis.EXTENDED_MONOMIAL)

_FORWARD = {Basis.MONOMIAL: Basis.LAGRANGE, Basis.EXTENDED_MONOMIAL: Basis.EXTENDED_LAGRANGE}
_INVERSE = {v: k for k, v in _FORWARD.items()}


def _fft(values: list[int], roots: list[int]) -> list[int]:
    """Radix-2 Cooley-Tukey over raw field integers.

    See https://vitalik.ca/general/2019/05/12/fft.html
    """
    if len(values) == 1:
        return values
    evens = _fft(values[::2], roots[::2])
    odds = _fft(values[1::2], roots[::2])
    half = len(evens)
    out = [0] * len(values)
    for i in range(half):
        t = odds[i] * roots[i]
        out[i] = (evens[i] + t) % Scalar.field_modulus
        out[i + half] = (evens[i] - t) % Scalar.field_modulus
    return out


class Polynomial:
    basis: Basis
    values: list[Scalar]

    def __init__(self, basis: Basis, values: list[Scalar]):
        self.basis = basis
        self.values = values

    def __len__(self):
        return len(self.values)

    def __eq__(self, other):
        return (
            isinstance(other, Polynomial)
            and self.basis == other.basis
            and [v.n for v in self.values] == [v.n for v in other.values]
        )

    def _combine(self, other: "Polynomial", op) -> "Polynomial":
        assert self.basis == other.basis
        assert len(self) == len(other)
        return Polynomial(self.basis, [op(x, y) for x, y in zip(self.values, other.values)])

    def __add__(self, other):
        if isinstance(other, Polynomial):
            return self._combine(other, operator.add)
        return self._add_constant(Scalar(other))

    def __sub__(self, other):
        if isinstance(other, Polynomial):
            return self._combine(other, operator.sub)
        return self._add_constant(-Scalar(other))

    def __mul__(self, other):
        if isinstance(other, Polynomial):
            # pointwise products only make sense on evaluations
            assert self.basis in EVALUATION_BASES
            return self._combine(other, operator.mul)
        return self._scale(Scalar(other))

    def __truediv__(self, other):
        if isinstance(other, Polynomial):
            assert self.basis in EVALUATION_BASES
            return self._combine(other, operator.truediv)
        return self._scale(1 / Scalar(other))

    def _scale(self, scalar: Scalar):
        return Polynomial(self.basis, [scalar * x for x in self.values])

    def _add_constant(self, constant: Scalar):
        assert self.basis in EVALUATION_BASES
        return Polynomial(self.basis, [x + constant for x in self.values])

    def shift(self, shift: int):
        """Rotate evaluations so that entry i holds the value at omega**(i + shift)."""
        assert self.basis in EVALUATION_BASES
        return Polynomial(self.basis, self.values[shift:] + self.values[:shift])

    def barycentric_eval(self, x) -> Scalar:
        """Evaluate at an arbitrary point straight from the Lagrange form."""
        assert self.basis == Basis.LAGRANGE
        return evaluate_with_weights(self, barycentric_weights(x, len(self.values)))

    def fft(self, inv=False):
        n = len(self.values)
        roots = [w.n for w in Scalar.roots_of_unity(n)]
        raw = [v.n for v in self.values]
        if inv:
            assert self.basis in _INVERSE
            # running the transform with the inverse roots, then dividing by n
            inv_n = Scalar(1) / n
            values = [Scalar(x) * inv_n for x in _fft(raw, roots[:1] + roots[:0:-1])]
            return Polynomial(_INVERSE[self.basis], values)
        assert self.basis in _FORWARD
        return Polynomial(_FORWARD[self.basis], [Scalar(x) for x in _fft(raw, roots)])

    def ifft(self):
        return self.fft(inv=True)

    def to_coset(self, shift: Scalar, inv=False):
        """Substitute x -> shift * x (or x / shift) in coefficient form."""
        assert self.basis in COEFFICIENT_BASES
        step = 1 / shift if inv else shift
        values = []
        power = Scalar(1)
        for c in self.values:
            values.append(power * c)
            power = power * step
        return Polynomial(self.basis, values)

    def fft_expand_to_coset(self, cofactor):
        """Re-evaluate over the 4n-th roots of unity times ``cofactor``.

        The quotient has degree close to 4n, so it needs the larger domain;
        the cofactor keeps the domain away from the zeros of Z_H.
        """
        assert self.basis == Basis.LAGRANGE
        n = len(self.values)
        shifted = self.ifft().to_coset(cofactor)
        padded = Polynomial(Basis.EXTENDED_MONOMIAL, shifted.values + [Scalar(0)] * (3 * n))
        return padded.fft()

    def coset_evals_to_coeffs(self, cofactor):
        # the result can have degree >= n, so it stays in extended monomial form
        assert self.basis == Basis.EXTENDED_LAGRANGE
        return self.ifft().to_coset(cofactor, inv=True)


def barycentric_weights(x, group_order: int) -> list[Scalar]:
    """Weights w_i with p(x) = sum p(omega^i) * w_i for every p of degree < n."""
    x = Scalar(x)
    roots = Scalar.roots_of_unity(group_order)
    factor = (x ** group_order - 1) / group_order
    if factor == 0:
        raise ValueError("evaluation point lies in the subgroup")
    return [factor * root / (x - root) for root in roots]


def evaluate_with_weights(poly: Polynomial, weights: list[Scalar]) -> Scalar:
    assert len(poly.values) == len(weights)
    total = 0
    for value, weight in zip(poly.values, weights):
        total += value.n * weight.n
    return Scalar(total)
