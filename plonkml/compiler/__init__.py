from .compiler import compile_circuit
from .program import COLUMN_COUNT, Circuit
