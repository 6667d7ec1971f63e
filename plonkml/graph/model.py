import dataclasses
import heapq
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..errors import GraphError
from ..tensor import int_array
from .ops import FLOAT_FORWARD, OpKind


@dataclass
class Node:
    idx: int
    kind: OpKind
    inputs: tuple = ()
    shape: Optional[tuple] = None
    attrs: dict = field(default_factory=dict)
    value: Optional[np.ndarray] = None
    # Set by the quantizer
    scale: Optional[int] = None
    qvalue: Optional[np.ndarray] = None
    name: Optional[str] = None

    def replace(self, **changes) -> "Node":
        return dataclasses.replace(self, **changes)

    @property
    def label(self) -> str:
        return self.name or "{}#{}".format(self.kind.value, self.idx)

    def to_dict(self) -> dict:
        o = {"kind": self.kind.value, "inputs": list(self.inputs)}
        if self.shape is not None:
            o["shape"] = list(self.shape)
        if self.attrs:
            o["attrs"] = {k: list(v) if isinstance(v, tuple) else v for k, v in self.attrs.items()}
        if self.value is not None:
            o["value"] = np.asarray(self.value, dtype=np.float64).tolist()
        if self.scale is not None:
            o["scale"] = self.scale
        if self.qvalue is not None:
            o["qvalue"] = [int(v) for v in self.qvalue.reshape(-1)]
        if self.name is not None:
            o["name"] = self.name
        return o

    @classmethod
    def from_dict(cls, idx: int, data: dict) -> "Node":
        try:
            kind = OpKind(data["kind"])
        except (KeyError, ValueError):
            raise GraphError("unknown op kind {!r}".format(data.get("kind")), node=idx) from None
        shape = tuple(data["shape"]) if data.get("shape") is not None else None
        value = data.get("value")
        if value is not None:
            value = np.asarray(value, dtype=np.float64)
        qvalue = data.get("qvalue")
        if qvalue is not None:
            qvalue = int_array(qvalue, np.shape(value) if value is not None else shape)
        return cls(
            idx=idx,
            kind=kind,
            inputs=tuple(int(i) for i in data.get("inputs", ())),
            shape=shape,
            attrs=dict(data.get("attrs", {})),
            value=value,
            scale=data.get("scale"),
            qvalue=qvalue,
            name=data.get("name"),
        )


class Graph:
    """Arena of nodes addressed by index, plus the ordered graph inputs
    and outputs."""

    def __init__(self, nodes=None, inputs=None, outputs=None):
        self.nodes: list[Node] = list(nodes or [])
        self.inputs: list[int] = list(inputs or [])
        self.outputs: list[int] = list(outputs or [])

    def __len__(self):
        return len(self.nodes)

    def __iter__(self):
        return iter(self.nodes)

    def __getitem__(self, idx: int) -> Node:
        return self.nodes[idx]

    def __repr__(self):
        return "Graph({} nodes, inputs={}, outputs={})".format(
            len(self.nodes), self.inputs, self.outputs)

    # Builder helpers

    def add(self, kind: OpKind, *inputs: int, shape=None, value=None, name=None, **attrs) -> int:
        idx = len(self.nodes)
        self.nodes.append(Node(
            idx=idx, kind=kind, inputs=tuple(inputs),
            shape=tuple(shape) if shape is not None else None,
            attrs=attrs, value=value, name=name,
        ))
        return idx

    def input(self, shape, name=None) -> int:
        idx = self.add(OpKind.INPUT, shape=shape, name=name)
        self.inputs.append(idx)
        return idx

    def const(self, value, name=None) -> int:
        value = np.asarray(value, dtype=np.float64)
        return self.add(OpKind.CONST, shape=value.shape, value=value, name=name)

    def output(self, idx: int) -> int:
        self.outputs.append(idx)
        return idx

    # Structure

    def consumers(self) -> dict[int, list[int]]:
        o = {node.idx: [] for node in self.nodes}
        for node in self.nodes:
            for i in node.inputs:
                o[i].append(node.idx)
        return o

    def topological_order(self) -> list[int]:
        """Kahn's algorithm, ties broken by node index."""
        indegree = [len(node.inputs) for node in self.nodes]
        consumers = self.consumers()
        ready = [i for i, d in enumerate(indegree) if d == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            i = heapq.heappop(ready)
            order.append(i)
            for j in consumers[i]:
                indegree[j] -= 1
                if indegree[j] == 0:
                    heapq.heappush(ready, j)
        if len(order) != len(self.nodes):
            stuck = min(i for i, d in enumerate(indegree) if d > 0)
            raise GraphError("graph contains a cycle", node=stuck)
        return order

    def levels(self) -> list[list[int]]:
        """Nodes grouped so that every node's inputs lie in earlier groups.
        Assumes the arena is topologically ordered."""
        depth = []
        for node in self.nodes:
            depth.append(1 + max((depth[i] for i in node.inputs), default=-1))
        o = [[] for _ in range(max(depth, default=-1) + 1)]
        for i, d in enumerate(depth):
            o[d].append(i)
        return o

    def evaluate(self, inputs) -> list[np.ndarray]:
        """Float reference semantics; one array per graph input, in order."""
        if len(inputs) != len(self.inputs):
            raise GraphError("expected {} inputs, got {}".format(len(self.inputs), len(inputs)))
        values = {}
        for idx, array in zip(self.inputs, inputs):
            values[idx] = np.asarray(array, dtype=np.float64)
        for i in self.topological_order():
            node = self.nodes[i]
            if node.kind is OpKind.INPUT:
                continue
            try:
                values[i] = FLOAT_FORWARD[node.kind](node, [values[j] for j in node.inputs])
            except (ValueError, KeyError) as e:
                raise GraphError(str(e), node=i) from e
        return [values[i] for i in self.outputs]

    # Ingestion format

    def to_dict(self) -> dict:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "inputs": list(self.inputs),
            "outputs": list(self.outputs),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Graph":
        try:
            nodes = [Node.from_dict(i, n) for i, n in enumerate(data["nodes"])]
            return cls(nodes, [int(i) for i in data["inputs"]], [int(i) for i in data["outputs"]])
        except (KeyError, TypeError) as e:
            raise GraphError("malformed graph description: {}".format(e)) from e
