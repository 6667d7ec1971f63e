import py_ecc.optimized_bn128 as b

from plonkml.curve import FixedBase, Scalar, ec_lincomb, to_signed
from plonkml.kzg import BatchOpening, Setup, opening_quotient, verify_batch
from plonkml.parallel import chunk_ranges, parallel_map
from plonkml.poly import Basis, Polynomial
from plonkml.transcript import Transcript


def monomial_eval(coeffs, x):
    return sum((c * x ** i for i, c in enumerate(coeffs)), Scalar(0))


def test_fft_round_trip():
    coeffs = [Scalar(v) for v in (3, -1, 4, 1, -5, 9, 2, 6)]
    evals = Polynomial(Basis.MONOMIAL, coeffs).fft()
    assert evals.basis == Basis.LAGRANGE
    roots = Scalar.roots_of_unity(8)
    assert evals.values == [monomial_eval(coeffs, w) for w in roots]
    assert evals.ifft() == Polynomial(Basis.MONOMIAL, coeffs)


def test_barycentric_eval():
    coeffs = [Scalar(v) for v in (7, 0, -2, 5)]
    evals = Polynomial(Basis.MONOMIAL, coeffs).fft()
    x = Scalar(123456789)
    assert evals.barycentric_eval(x) == monomial_eval(coeffs, x)


def test_coset_expansion():
    coeffs = [Scalar(v) for v in (1, 2, 3, 4)]
    evals = Polynomial(Basis.MONOMIAL, coeffs).fft()
    cofactor = Scalar(7)
    big = evals.fft_expand_to_coset(cofactor)
    quarter = Scalar.roots_of_unity(16)
    assert big.values[5] == monomial_eval(coeffs, cofactor * quarter[5])
    back = big.coset_evals_to_coeffs(cofactor).values
    assert back[:4] == coeffs and all(c == 0 for c in back[4:])


def test_roots_of_unity():
    w = Scalar.root_of_unity(16)
    assert w ** 16 == 1 and w ** 8 != 1
    assert to_signed(b.curve_order - 3) == -3
    assert to_signed(5) == 5


def test_lincomb_matches_naive_sum():
    points = [b.multiply(b.G1, k) for k in (2, 3, 5, 7, 11, 13)]
    coeffs = [1, -1, 12345, 0, b.curve_order - 2, 1 << 200]
    naive = b.Z1
    for pt, c in zip(points, coeffs):
        naive = b.add(naive, b.multiply(pt, c % b.curve_order))
    assert b.eq(ec_lincomb(zip(points, coeffs)), naive)
    assert b.eq(ec_lincomb(zip(points[:2], coeffs[:2])), b.add(points[0], b.neg(points[1])))
    assert b.is_inf(ec_lincomb([]))


def test_fixed_base():
    base = FixedBase(b.G1, width=4)
    for k in (0, 1, 255, 1 << 130, b.curve_order - 1):
        assert b.eq(base.multiply(k), b.multiply(b.G1, k % b.curve_order))


def test_commitments_open():
    setup = Setup.generate(8, "kzg-test")
    ones = Polynomial(Basis.LAGRANGE, [Scalar(1)] * 8)
    # the Lagrange basis sums to one
    assert b.eq(setup.commit(ones), b.G1)

    p = Polynomial(Basis.MONOMIAL, [Scalar(v) for v in (5, 0, 1, 2, 0, 0, 0, 3)]).fft()
    q = Polynomial(Basis.LAGRANGE, [Scalar(v) for v in range(8)])
    zeta, v, u = Scalar(17), Scalar(19), Scalar(23)
    evals = [p.barycentric_eval(zeta), q.barycentric_eval(zeta)]
    witness = setup.commit(opening_quotient([p, q], evals, zeta, v))
    opening = BatchOpening(point=zeta, commitments=[setup.commit(p), setup.commit(q)],
                           evaluations=evals, witness=witness)
    assert verify_batch(setup.X2, [opening], v, u)

    opening.evaluations = [evals[0] + 1, evals[1]]
    assert not verify_batch(setup.X2, [opening], v, u)


def test_setup_is_deterministic():
    assert Setup.generate(8, "a") is Setup.generate(8, "a")
    assert not b.eq(Setup.generate(8, "a").lagrange_g1[0], Setup.generate(8, "b").lagrange_g1[0])


def test_transcript():
    def run(message):
        t = Transcript(b"test")
        t.hash_point(b.G1, b"P")
        t.hash_scalar(message, b"m")
        return t.squeeze(b"c1"), t.squeeze(b"c2")

    a1, a2 = run(1)
    assert (a1, a2) == run(1)
    assert a1 != a2
    assert run(2)[0] != a1


def test_parallel_helpers():
    assert chunk_ranges(10, 3) == [range(0, 4), range(4, 7), range(7, 10)]
    assert chunk_ranges(2, 8) == [range(0, 1), range(1, 2)]
    assert chunk_ranges(0, 4) == []
    assert parallel_map(lambda x: x * x, range(20), workers=4) == [x * x for x in range(20)]
