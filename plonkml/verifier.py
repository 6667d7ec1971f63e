import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import py_ecc.optimized_bn128 as b

from .constraints import Challenges, constraint_numerator, seed_transcript
from .curve import Scalar
from .keys import VerificationKey
from .kzg.opening import BatchOpening, verify_batch
from .proof import COMMITMENTS, SHIFTED_EVALUATIONS, ZETA_EVALUATIONS, Proof

logger = logging.getLogger(__name__)


class RejectReason(Enum):
    MALFORMED_PROOF = "malformed_proof"
    COMMITMENT_MISMATCH = "commitment_mismatch"
    OPENING_FAILURE = "opening_failure"
    VERSION_MISMATCH = "version_mismatch"


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    reason: Optional[RejectReason] = None

    def __bool__(self):
        return self.accepted


ACCEPT = VerificationResult(True)


def _reject(reason: RejectReason, detail: str) -> VerificationResult:
    logger.info("Rejected proof (%s): %s", reason.value, detail)
    return VerificationResult(False, reason)


def _well_formed_point(pt) -> bool:
    try:
        return len(pt) == 3 and all(isinstance(c, b.FQ) for c in pt) and b.is_on_curve(pt, b.b)
    except TypeError:
        return False


@dataclass
class Verifier:
    vk: VerificationKey

    def verify(self, proof: Proof, instances) -> VerificationResult:
        vk = self.vk
        if not isinstance(proof, Proof):
            return _reject(RejectReason.MALFORMED_PROOF, "not a proof")
        if proof.version != vk.version or proof.digest != vk.digest:
            return _reject(RejectReason.VERSION_MISMATCH, "proof belongs to another circuit or format")

        problem = self.check_shape(proof, instances)
        if problem is not None:
            return _reject(RejectReason.MALFORMED_PROOF, problem)
        instances = [int(v) for v in instances]

        group_order = vk.group_order
        commitments = proof.commitments

        # Recompute the challenges from the transcript
        transcript = seed_transcript(vk.digest, group_order, instances)
        for name in ("A", "B", "C", "M"):
            transcript.hash_point(commitments[name], name.encode())
        beta = transcript.squeeze(b"beta")
        gamma = transcript.squeeze(b"gamma")
        theta = transcript.squeeze(b"theta")
        delta = transcript.squeeze(b"delta")
        for name in ("Z", "PHI"):
            transcript.hash_point(commitments[name], name.encode())
        alpha = transcript.squeeze(b"alpha")
        transcript.squeeze(b"cofactor")
        for name in ("T1", "T2", "T3"):
            transcript.hash_point(commitments[name], name.encode())
        zeta = transcript.squeeze(b"zeta")
        for name in ZETA_EVALUATIONS:
            transcript.hash_scalar(proof.evaluations[name], name.encode())
        for name in SHIFTED_EVALUATIONS:
            transcript.hash_scalar(proof.shifted_evaluations[name], name.encode() + b"_omega")
        v = transcript.squeeze(b"v")
        for name in ("W_zeta", "W_zeta_omega"):
            transcript.hash_point(commitments[name], name.encode())
        u = transcript.squeeze(b"u")

        # Compute zero polynomial evaluation Z_H(ζ) = ζ^n - 1
        zeta_n = zeta ** group_order
        ZH_ev = zeta_n - 1
        if ZH_ev == 0:
            return _reject(RejectReason.MALFORMED_PROOF, "challenge fell on the evaluation domain")

        # Lagrange basis evaluations at ζ for the public rows:
        # L_i(ζ) = ω^i (ζ^n - 1) / (n (ζ - ω^i))
        roots = Scalar.roots_of_unity(group_order)
        factor = ZH_ev / group_order
        L1_ev = factor / (zeta - 1)
        PI_ev = Scalar(0)
        for i, value in enumerate(instances):
            PI_ev -= Scalar(value) * factor * roots[i] / (zeta - roots[i])

        e = dict(proof.evaluations)
        e["Z_omega"] = proof.shifted_evaluations["Z"]
        e["PHI_omega"] = proof.shifted_evaluations["PHI"]
        numerator = constraint_numerator(e, zeta, PI_ev, L1_ev, Challenges(beta, gamma, theta, delta, alpha))
        quotient = e["T1"] + zeta_n * e["T2"] + zeta_n * zeta_n * e["T3"]
        if numerator != quotient * ZH_ev:
            return _reject(RejectReason.COMMITMENT_MISMATCH, "constraint identity fails at zeta")

        committed = dict(commitments)
        committed.update(vk.commitments)
        openings = [
            BatchOpening(
                point=zeta,
                commitments=[committed[n] for n in ZETA_EVALUATIONS],
                evaluations=[proof.evaluations[n] for n in ZETA_EVALUATIONS],
                witness=commitments["W_zeta"],
            ),
            BatchOpening(
                point=zeta * Scalar.root_of_unity(group_order),
                commitments=[committed[n] for n in SHIFTED_EVALUATIONS],
                evaluations=[proof.shifted_evaluations[n] for n in SHIFTED_EVALUATIONS],
                witness=commitments["W_zeta_omega"],
            ),
        ]
        if not verify_batch(vk.X2, openings, v, u):
            return _reject(RejectReason.OPENING_FAILURE, "pairing check fails")

        logger.info("Accepted proof for circuit %s", vk.digest.hex()[:16])
        return ACCEPT

    def check_shape(self, proof: Proof, instances) -> Optional[str]:
        try:
            count = len(instances)
        except TypeError:
            return "public values are not a sequence"
        if count != self.vk.public_count:
            return "{} public values, circuit has {}".format(count, self.vk.public_count)
        for value in instances:
            if isinstance(value, bool) or not isinstance(value, int):
                return "public value {!r} is not an integer".format(value)
        commitments = getattr(proof, "commitments", None)
        evaluations = getattr(proof, "evaluations", None)
        shifted = getattr(proof, "shifted_evaluations", None)
        if not isinstance(commitments, dict) or not isinstance(evaluations, dict) or not isinstance(shifted, dict):
            return "missing proof fields"
        for name in COMMITMENTS:
            if name not in commitments or not _well_formed_point(commitments[name]):
                return "commitment {} missing or off the curve".format(name)
        for table, names in ((evaluations, ZETA_EVALUATIONS), (shifted, SHIFTED_EVALUATIONS)):
            for name in names:
                if not isinstance(table.get(name), Scalar):
                    return "evaluation {} missing or not a field element".format(name)
        return None


def verify(vk: VerificationKey, proof: Proof, instances) -> VerificationResult:
    return Verifier(vk).verify(proof, instances)
