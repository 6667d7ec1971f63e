from ..curve import G1Point, G2Point
from .opening import BatchOpening, opening_quotient, verify_batch
from .setup import Setup
