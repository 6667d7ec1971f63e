import logging

import numpy as np

from .compiler import Circuit, compile_circuit
from .errors import SerializationError, VersionMismatchError
from .graph import Graph, normalize
from .keys import ProvingKey, VerificationKey, keygen
from .kzg.setup import Setup
from .proof import Proof
from .prover import Prover
from .quantize import quantize
from .settings import RunArgs
from .tensor import Tensor
from .verifier import RejectReason, VerificationResult, Verifier
from .witness import generate_witness

logger = logging.getLogger(__name__)


def compile(graph, run_args: RunArgs = None, setup: Setup = None) -> tuple[Circuit, ProvingKey, VerificationKey]:
    """Graph (or its dict description) -> circuit and keys. Nothing is
    returned or cached when any stage fails."""
    if run_args is None:
        run_args = RunArgs()
    if isinstance(graph, dict):
        graph = Graph.from_dict(graph)
    quantized = quantize(normalize(graph), run_args)
    circuit = compile_circuit(quantized, run_args)
    pk, vk = keygen(circuit, setup)
    return circuit, pk, vk


def prove(circuit: Circuit, pk: ProvingKey, inputs) -> tuple[Proof, list[Tensor]]:
    """Runs the model on ``inputs`` (one array per graph input) and proves
    the run. Returns the proof and the output tensors."""
    pk.check_circuit(circuit)
    witness = generate_witness(circuit, inputs)
    proof = Prover(circuit, pk).prove(witness)
    return proof, witness.outputs


def _flatten_public(entries, values):
    if values is None:
        values = []
    if len(values) != len(entries):
        raise ValueError("{} public tensors, circuit has {}".format(len(values), len(entries)))
    o = []
    for entry, value in zip(entries, values):
        if isinstance(value, Tensor):
            if value.scale != entry["scale"]:
                raise ValueError("tensor at scale {}, circuit expects {}".format(value.scale, entry["scale"]))
            array = value.values
        else:
            array = np.asarray(value)
            if array.dtype.kind not in "iuO":
                raise ValueError("public values must be Tensors or integer arrays")
        if tuple(array.shape) != tuple(entry["shape"]):
            raise ValueError("public tensor of shape {}, circuit expects {}".format(
                tuple(array.shape), tuple(entry["shape"])))
        o.extend(int(v) for v in array.reshape(-1))
    return o


def public_instances(vk: VerificationKey, public_outputs, public_inputs=None) -> list[int]:
    inputs = [e for e in vk.instance_layout if e["role"] == "input"]
    outputs = [e for e in vk.instance_layout if e["role"] == "output"]
    return _flatten_public(inputs, public_inputs) + _flatten_public(outputs, public_outputs if outputs else None)


def verify_proof(vk: VerificationKey, proof, public_outputs, public_inputs=None) -> VerificationResult:
    """Like ``verify`` but tells why a proof was rejected. ``proof`` may be
    a Proof or its serialized bytes."""
    if isinstance(proof, (bytes, bytearray)):
        try:
            proof = Proof.from_bytes(proof)
        except VersionMismatchError:
            return VerificationResult(False, RejectReason.VERSION_MISMATCH)
        except SerializationError:
            return VerificationResult(False, RejectReason.MALFORMED_PROOF)
    try:
        instances = public_instances(vk, public_outputs, public_inputs)
    except (ValueError, TypeError) as e:
        logger.info("Rejected public values: %s", e)
        return VerificationResult(False, RejectReason.MALFORMED_PROOF)
    return Verifier(vk).verify(proof, instances)


def verify(vk: VerificationKey, proof, public_outputs, public_inputs=None) -> bool:
    return bool(verify_proof(vk, proof, public_outputs, public_inputs))
