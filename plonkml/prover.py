import logging
from dataclasses import dataclass

from .compiler.compiler import table_rows
from .compiler.program import Circuit
from .constraints import Challenges, constraint_numerator, seed_transcript
from .curve import Scalar
from .errors import UnsatisfiedConstraintError
from .keys import ProvingKey
from .kzg.opening import opening_quotient
from .parallel import chunk_ranges, parallel_map
from .poly import Basis, Polynomial, barycentric_weights, evaluate_with_weights
from .proof import SHIFTED_EVALUATIONS, ZETA_EVALUATIONS, Proof
from .transcript import Transcript
from .witness import Witness, mock_prove

logger = logging.getLogger(__name__)


@dataclass
class Prover:
    circuit: Circuit
    pk: ProvingKey

    def prove(self, witness: Witness) -> Proof:
        self.pk.check_circuit(self.circuit)
        self.group_order = self.circuit.group_order
        self.workers = self.circuit.run_args.num_workers

        # Sanity check that the witness fulfils every constraint
        mock_prove(self.circuit, witness)

        # Initialise Fiat-Shamir transcript
        transcript = seed_transcript(self.circuit.digest, self.group_order, witness.instances)

        # Collect fixed and public information
        self.init(witness)

        commitments = {}

        # Round 1
        # - [a(x)]₁, [b(x)]₁, [c(x)]₁ (commitments to the wire polynomials)
        # - [m(x)]₁ (commitment to the table multiplicities)
        commitments.update(self.round_1(witness, transcript))

        # Round 2
        # - [z(x)]₁ (commitment to the permutation accumulator)
        # - [phi(x)]₁ (commitment to the lookup accumulator)
        commitments.update(self.round_2(transcript))

        # Round 3
        # - [t1(x)]₁, [t2(x)]₁, [t3(x)]₁ (commitments to the chunks of the
        #   quotient polynomial t(X))
        commitments.update(self.round_3(transcript))

        # Round 4
        # - Evaluations of every polynomial at the challenge ζ
        # - Evaluations of z(X) and phi(X) at the shifted challenge ζω
        evaluations, shifted = self.round_4(transcript)

        # Round 5
        # - [W_ζ(X)]₁, [W_ζω(X)]₁ (commitments to the opening proof polynomials)
        commitments.update(self.round_5(transcript))

        return Proof(
            digest=self.circuit.digest,
            commitments=commitments,
            evaluations=evaluations,
            shifted_evaluations=shifted,
        )

    def init(self, witness: Witness):
        self.polys = dict(self.pk.fixed)

        # Public values enter the gate identity at the top rows
        public_values = (
            [Scalar(-v) for v in witness.instances] +
            [Scalar(0) for _ in range(self.group_order - len(witness.instances))]
        )
        self.PI = Polynomial(Basis.LAGRANGE, public_values)
        self.L1 = Polynomial(
            Basis.LAGRANGE,
            [Scalar(1)] + [Scalar(0) for _ in range(self.group_order - 1)],
        )

    def commit_all(self, names, transcript: Transcript) -> dict:
        points = parallel_map(self.pk.setup.commit, [self.polys[n] for n in names], self.workers)
        for name, point in zip(names, points):
            transcript.hash_point(point, name.encode())
        return dict(zip(names, points))

    def round_1(self, witness: Witness, transcript: Transcript) -> dict:
        group_order = self.group_order

        # Compute wire assignments
        A_values = [Scalar(0) for _ in range(group_order)]
        B_values = [Scalar(0) for _ in range(group_order)]
        C_values = [Scalar(0) for _ in range(group_order)]
        for i, gate_wires in enumerate(self.circuit.wires()):
            A_values[i] = Scalar(witness.value(gate_wires.L))
            B_values[i] = Scalar(witness.value(gate_wires.R))
            C_values[i] = Scalar(witness.value(gate_wires.O))

        # How often each table row is looked up; padding rows never are
        entries = table_rows(group_order, self.circuit.tables)
        position = {}
        for j, entry in enumerate(entries):
            position.setdefault(entry, j)
        counts = [0] * group_order
        for i, row in enumerate(self.circuit.rows):
            if row.table:
                key = (row.table, witness.value(row.wires.L), witness.value(row.wires.O))
                if key not in position:
                    raise UnsatisfiedConstraintError("lookup of {} has no table row".format(key), row=i)
                counts[position[key]] += 1

        self.polys["A"] = Polynomial(Basis.LAGRANGE, A_values)
        self.polys["B"] = Polynomial(Basis.LAGRANGE, B_values)
        self.polys["C"] = Polynomial(Basis.LAGRANGE, C_values)
        self.polys["M"] = Polynomial(Basis.LAGRANGE, [Scalar(m) for m in counts])

        commitments = self.commit_all(("A", "B", "C", "M"), transcript)

        self.beta = transcript.squeeze(b"beta")
        self.gamma = transcript.squeeze(b"gamma")
        self.theta = transcript.squeeze(b"theta")
        self.delta = transcript.squeeze(b"delta")
        return commitments

    def round_2(self, transcript: Transcript) -> dict:
        group_order = self.group_order
        p = self.polys
        beta, gamma, theta, delta = self.beta, self.gamma, self.theta, self.delta
        roots_of_unity = Scalar.roots_of_unity(group_order)

        def rlc(term_1, term_2):
            return term_1 + term_2 * beta + gamma

        # Permutation accumulator
        Z_values = [Scalar(1)]
        for i in range(group_order):
            Z_values.append(
                Z_values[-1]
                * rlc(p["A"].values[i], roots_of_unity[i])
                * rlc(p["B"].values[i], 2 * roots_of_unity[i])
                * rlc(p["C"].values[i], 3 * roots_of_unity[i])
                / rlc(p["A"].values[i], p["S1"].values[i])
                / rlc(p["B"].values[i], p["S2"].values[i])
                / rlc(p["C"].values[i], p["S3"].values[i])
            )
        if Z_values.pop() != 1:
            raise UnsatisfiedConstraintError("copy constraints do not hold")

        # Lookup accumulator: running sum of QLK / (delta + f) - M / (delta + t)
        theta2 = theta * theta
        PHI_values = [Scalar(0)]
        for i in range(group_order):
            step = Scalar(0)
            if p["QLK"].values[i] != 0:
                f = delta + p["QTAG"].values[i] + theta * p["A"].values[i] + theta2 * p["C"].values[i]
                step += p["QLK"].values[i] / f
            if p["M"].values[i] != 0:
                t = delta + p["TTAG"].values[i] + theta * p["TIN"].values[i] + theta2 * p["TOUT"].values[i]
                step -= p["M"].values[i] / t
            PHI_values.append(PHI_values[-1] + step)
        if PHI_values.pop() != 0:
            raise UnsatisfiedConstraintError("lookups are not covered by the tables")

        self.polys["Z"] = Polynomial(Basis.LAGRANGE, Z_values)
        self.polys["PHI"] = Polynomial(Basis.LAGRANGE, PHI_values)
        commitments = self.commit_all(("Z", "PHI"), transcript)

        self.alpha = transcript.squeeze(b"alpha")
        self.fft_cofactor = transcript.squeeze(b"cofactor")
        return commitments

    def round_3(self, transcript: Transcript) -> dict:
        group_order = self.group_order
        cofactor = self.fft_cofactor

        names = [n for n in ZETA_EVALUATIONS if n not in ("T1", "T2", "T3")]
        expanded = parallel_map(
            lambda poly: poly.fft_expand_to_coset(cofactor),
            [self.polys[n] for n in names] + [self.PI, self.L1],
            self.workers,
        )
        coset = dict(zip(names, expanded))
        PI_big, L1_big = expanded[-2], expanded[-1]
        Z_shifted = coset["Z"].shift(4)
        PHI_shifted = coset["PHI"].shift(4)

        quarter_roots = Scalar.roots_of_unity(group_order * 4)

        # Z_H(X) = X^n - 1 takes only four values on the coset
        cofactor_n = cofactor ** group_order
        zh_inverse = [1 / (cofactor_n * quarter_roots[i * group_order] - 1) for i in range(4)]

        challenges = Challenges(self.beta, self.gamma, self.theta, self.delta, self.alpha)

        def quotient_chunk(indices: range) -> list[Scalar]:
            o = []
            for i in indices:
                e = {n: coset[n].values[i] for n in names}
                e["Z_omega"] = Z_shifted.values[i]
                e["PHI_omega"] = PHI_shifted.values[i]
                X = cofactor * quarter_roots[i]
                numerator = constraint_numerator(e, X, PI_big.values[i], L1_big.values[i], challenges)
                o.append(numerator * zh_inverse[i % 4])
            return o

        chunks = parallel_map(quotient_chunk, chunk_ranges(group_order * 4, self.workers), self.workers)
        QUOT_big = Polynomial(Basis.EXTENDED_LAGRANGE, [v for chunk in chunks for v in chunk])

        all_coeffs = QUOT_big.coset_evals_to_coeffs(cofactor).values

        # Sanity check: QUOT has degree < 3n
        if any(c != 0 for c in all_coeffs[group_order * 3:]):
            raise UnsatisfiedConstraintError("quotient polynomial has degree >= 3n")
        logger.info("Generated the quotient polynomial")

        for k, name in enumerate(("T1", "T2", "T3")):
            self.polys[name] = Polynomial(
                Basis.MONOMIAL, all_coeffs[k * group_order:(k + 1) * group_order]
            ).fft()
        commitments = self.commit_all(("T1", "T2", "T3"), transcript)

        self.zeta = transcript.squeeze(b"zeta")
        return commitments

    def round_4(self, transcript: Transcript):
        group_order = self.group_order
        zeta_omega = self.zeta * Scalar.root_of_unity(group_order)

        weights = barycentric_weights(self.zeta, group_order)
        shifted_weights = barycentric_weights(zeta_omega, group_order)

        evaluations = {n: evaluate_with_weights(self.polys[n], weights) for n in ZETA_EVALUATIONS}
        shifted = {n: evaluate_with_weights(self.polys[n], shifted_weights) for n in SHIFTED_EVALUATIONS}
        for name in ZETA_EVALUATIONS:
            transcript.hash_scalar(evaluations[name], name.encode())
        for name in SHIFTED_EVALUATIONS:
            transcript.hash_scalar(shifted[name], name.encode() + b"_omega")

        self.evaluations = evaluations
        self.shifted = shifted
        self.zeta_omega = zeta_omega
        self.v = transcript.squeeze(b"v")
        return evaluations, shifted

    def round_5(self, transcript: Transcript) -> dict:
        self.polys["W_zeta"] = opening_quotient(
            [self.polys[n] for n in ZETA_EVALUATIONS],
            [self.evaluations[n] for n in ZETA_EVALUATIONS],
            self.zeta, self.v,
        )
        self.polys["W_zeta_omega"] = opening_quotient(
            [self.polys[n] for n in SHIFTED_EVALUATIONS],
            [self.shifted[n] for n in SHIFTED_EVALUATIONS],
            self.zeta_omega, self.v,
        )
        commitments = self.commit_all(("W_zeta", "W_zeta_omega"), transcript)
        logger.info("Generated the opening proofs")
        return commitments


def prove(circuit: Circuit, pk: ProvingKey, witness: Witness) -> Proof:
    return Prover(circuit, pk).prove(witness)
