from dataclasses import dataclass

from .curve import Scalar
from .transcript import Transcript


@dataclass(frozen=True)
class Challenges:
    beta: Scalar
    gamma: Scalar
    theta: Scalar
    delta: Scalar
    alpha: Scalar


def seed_transcript(digest: bytes, group_order: int, instances) -> Transcript:
    transcript = Transcript(b"plonkml-proof")
    transcript.hash_bytes(b"circuit", digest)
    transcript.hash_scalar(group_order, b"group_order")
    transcript.hash_scalar(len(instances), b"instances")
    for value in instances:
        transcript.hash_scalar(value, b"instance")
    return transcript


# The combined constraint polynomial at one point X, given the values of
# every column there (Z_omega and PHI_omega are Z and PHI at omega * X):
#
#   gates + a * perm + a^2 * perm_start + a^3 * lookup + a^4 * lookup_start
#
# It vanishes on the whole evaluation domain iff every gate, copy
# constraint and lookup holds.
def constraint_numerator(e, X: Scalar, PI: Scalar, L1: Scalar, ch: Challenges) -> Scalar:
    A, B, C = e["A"], e["B"], e["C"]
    beta, gamma = ch.beta, ch.gamma

    gates = A * e["QL"] + B * e["QR"] + A * B * e["QM"] + C * e["QO"] + e["QC"] + PI

    perm = (
        e["Z"]
        * (A + beta * X + gamma)
        * (B + beta * 2 * X + gamma)
        * (C + beta * 3 * X + gamma)
        - e["Z_omega"]
        * (A + beta * e["S1"] + gamma)
        * (B + beta * e["S2"] + gamma)
        * (C + beta * e["S3"] + gamma)
    )
    perm_start = (e["Z"] - 1) * L1

    # LogUp: PHI(wX) - PHI(X) = QLK / (delta + f) - M / (delta + t)
    theta2 = ch.theta * ch.theta
    f = ch.delta + e["QTAG"] + ch.theta * A + theta2 * C
    t = ch.delta + e["TTAG"] + ch.theta * e["TIN"] + theta2 * e["TOUT"]
    lookup = (e["PHI_omega"] - e["PHI"]) * f * t - e["QLK"] * t + e["M"] * f
    lookup_start = e["PHI"] * L1

    alpha = ch.alpha
    alpha2 = alpha * alpha
    return gates + alpha * perm + alpha2 * perm_start + alpha2 * alpha * lookup + alpha2 * alpha2 * lookup_start
