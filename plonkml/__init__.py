from .api import compile, prove, public_instances, verify, verify_proof
from .compiler import Circuit
from .errors import (
    CompileError,
    GraphError,
    PlonkmlError,
    ProvingKeyMismatchError,
    QuantizationError,
    SerializationError,
    TableOverflowError,
    UnsatisfiedConstraintError,
    VersionMismatchError,
    WitnessError,
)
from .graph import Graph, Node, OpKind
from .keys import ProvingKey, VerificationKey
from .proof import Proof
from .settings import RunArgs
from .tensor import Tensor
from .verifier import RejectReason, VerificationResult

__version__ = "0.1.0"
