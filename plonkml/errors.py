"""
Error taxonomy.

Compile-time errors (graph, quantization, compile) are surfaced before any
artifact exists. Witness and proving errors never retry: proving is
deterministic, so a retry with identical inputs fails identically.
Verification failures are not exceptions; see ``verifier.RejectReason``.
"""

from typing import Optional


class PlonkmlError(Exception):
    pass


class GraphError(PlonkmlError):
    """Structural problem in the input graph."""

    def __init__(self, message: str, node: Optional[int] = None):
        if node is not None:
            message = "node {}: {}".format(node, message)
        super().__init__(message)
        self.node = node


class QuantizationError(PlonkmlError):
    """A value does not fit the fixed-point representation."""

    def __init__(self, message: str, tensor=None):
        if tensor is not None:
            message = "tensor {}: {}".format(tensor, message)
        super().__init__(message)
        self.tensor = tensor


class CompileError(PlonkmlError):
    """Lowering failed or the circuit exceeds a configured budget."""

    def __init__(self, message: str, budget: Optional[str] = None):
        super().__init__(message)
        self.budget = budget


class TableOverflowError(CompileError):
    def __init__(self, message: str):
        super().__init__(message, budget="lookup_cells")


class WitnessError(PlonkmlError):
    """A concrete input breaks the assumptions the circuit was compiled with."""

    def __init__(self, message: str, node: Optional[int] = None):
        if node is not None:
            message = "node {}: {}".format(node, message)
        super().__init__(message)
        self.node = node


class UnsatisfiedConstraintError(PlonkmlError):
    """The witness does not satisfy the circuit. Always a defect."""

    def __init__(self, message: str, row: Optional[int] = None):
        if row is not None:
            message = "row {}: {}".format(row, message)
        super().__init__(message)
        self.row = row


class ProvingKeyMismatchError(PlonkmlError):
    pass


class VersionMismatchError(PlonkmlError):
    pass


class SerializationError(PlonkmlError):
    pass
