import numpy as np
import pytest

from plonkml import QuantizationError, RunArgs, Tensor
from plonkml.tensor import bit_range, int_array, round_half_up


def test_quantize_rounds_half_up():
    t = Tensor.quantize([0.125, -0.125, 0.375, -0.375, 1.0], scale=2, bits=8)
    assert t.to_list() == [1, 0, 2, -1, 4]
    assert t.scale == 2
    assert t.shape == (5,)


def test_quantize_dequantize_is_idempotent():
    rng = np.random.default_rng(7)
    data = rng.uniform(-3, 3, size=(4, 3))
    t = Tensor.quantize(data, scale=6, bits=16)
    again = Tensor.quantize(t.dequantize(), scale=6, bits=16)
    assert again == t


def test_bit_width_boundary():
    # 8 signed bits at scale 2 hold [-32.0, 31.75]
    assert Tensor.quantize([31.75, -32.0], scale=2, bits=8).to_list() == [127, -128]
    with pytest.raises(QuantizationError):
        Tensor.quantize([32.0], scale=2, bits=8)
    with pytest.raises(QuantizationError):
        Tensor.quantize([-32.25], scale=2, bits=8)


def test_non_finite_values_are_rejected():
    with pytest.raises(QuantizationError) as e:
        Tensor.quantize([np.nan], scale=2, bits=8, name="weights")
    assert e.value.tensor == "weights"


def test_values_are_python_ints():
    t = Tensor(np.array([[1, 2], [3, 4]]), scale=0)
    assert all(type(v) is int for v in t.values.reshape(-1))
    with pytest.raises(ValueError):
        t.values[0, 0] = 5


def test_helpers():
    assert bit_range(8) == (-128, 127)
    assert round_half_up([0.5, -0.5, 1.49]).tolist() == [1.0, 0.0, 1.0]
    wide = int_array([1 << 70, -(1 << 70)])
    assert wide.dtype == object
    assert (wide * wide)[0] == 1 << 140


def test_check_range():
    t = Tensor([127, -128], scale=0)
    assert t.check_range(8)
    assert not t.check_range(7)


def test_run_args_validation():
    assert RunArgs().multiplier == 128
    assert RunArgs(bits=8).max_value == 127
    assert RunArgs(bits=8).min_value == -128
    args = RunArgs(scale=3, output_visibility="private")
    assert RunArgs.from_dict(args.to_dict()) == args
    with pytest.raises(ValueError):
        RunArgs(input_visibility="hidden")
    with pytest.raises(ValueError):
        RunArgs(max_rows=4)
    with pytest.raises(ValueError):
        RunArgs(num_workers=0)
