from .model import Graph, Node
from .normalize import normalize
from .ops import OpKind
