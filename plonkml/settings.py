from dataclasses import asdict, dataclass, fields

VISIBILITIES = ("private", "public")


@dataclass(frozen=True)
class RunArgs:
    """Parameters of one compilation.

    scale:            fractional bits of every activation (values are
                      stored as round(x * 2**scale))
    bits:             signed bit-width every activation must fit
    lookup_bits:      limb width used when range checks decompose a value
    max_lookup_cells: largest lookup table domain that may be built
    max_rows:         largest evaluation domain (rows, padded to a power of two)
    max_columns:      largest number of advice + fixed + instance columns
    tolerance:        accepted relative precision loss when quantizing constants
    input_visibility / output_visibility: "private" or "public"
    num_workers:      thread pool width for witness generation and proving
    srs_seed:         seed of the deterministic development setup
    """

    scale: int = 7
    bits: int = 16
    lookup_bits: int = 8
    max_lookup_cells: int = 1 << 16
    max_rows: int = 1 << 16
    max_columns: int = 32
    tolerance: float = 0.5
    input_visibility: str = "private"
    output_visibility: str = "public"
    num_workers: int = 1
    srs_seed: str = "plonkml-dev-setup"

    def __post_init__(self):
        if not 0 <= self.scale <= 32:
            raise ValueError("scale must lie in [0, 32], got {}".format(self.scale))
        if not 2 <= self.bits <= 64:
            raise ValueError("bits must lie in [2, 64], got {}".format(self.bits))
        if not 1 <= self.lookup_bits <= 24:
            raise ValueError("lookup_bits must lie in [1, 24], got {}".format(self.lookup_bits))
        if self.max_lookup_cells < 2:
            raise ValueError("max_lookup_cells must be at least 2")
        if self.max_rows < 8:
            raise ValueError("max_rows must be at least 8")
        if self.max_columns < 1:
            raise ValueError("max_columns must be positive")
        if self.tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        for name in ("input_visibility", "output_visibility"):
            if getattr(self, name) not in VISIBILITIES:
                raise ValueError("{} must be one of {}".format(name, VISIBILITIES))
        if self.num_workers < 1:
            raise ValueError("num_workers must be positive")

    @property
    def multiplier(self) -> int:
        return 1 << self.scale

    @property
    def max_value(self) -> int:
        return (1 << (self.bits - 1)) - 1

    @property
    def min_value(self) -> int:
        return -(1 << (self.bits - 1))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RunArgs":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
