import numpy as np
import pytest

from meshnet.errors import CheckError
from meshnet.layer_param import LayerParam


def test_defaults():
    p = LayerParam()
    assert p.temp_col_max == 64 << 18
    assert p.init_sigma == pytest.approx(0.01)
    assert p.init_uniform == -1.0
    assert p.num_group == 1
    assert p.stride == 1
    assert p.reserved == [0] * 64


def test_kernel_size_sets_both_dimensions():
    p = LayerParam()
    p.set_param("kernel_size", "5")
    assert (p.kernel_height, p.kernel_width) == (5, 5)
    p.set_param("kernel_width", "3")
    assert (p.kernel_height, p.kernel_width) == (5, 3)


def test_pad_sets_both_dimensions():
    p = LayerParam()
    p.set_param("pad", "2")
    assert (p.pad_y, p.pad_x) == (2, 2)


def test_aliases_for_counts():
    p = LayerParam()
    p.set_param("nhidden", "100")
    p.set_param("nchannel", "32")
    p.set_param("ngroup", "4")
    assert (p.num_hidden, p.num_channel, p.num_group) == (100, 32, 4)


def test_float_params_are_single_precision():
    p = LayerParam()
    p.set_param("init_bias", "0.1")
    assert p.init_bias == float(np.float32(0.1))


def test_lenient_integer_parsing():
    p = LayerParam()
    p.set_param("stride", "7px")
    assert p.stride == 7
    p.set_param("stride", "abc")
    assert p.stride == 0


def test_temp_col_max_is_scaled():
    p = LayerParam()
    p.set_param("temp_col_max", "2")
    assert p.temp_col_max == 2 << 18


@pytest.mark.parametrize(
    "name, expected",
    [("gaussian", 0), ("uniform", 1), ("xavier", 1), ("kaiming", 2)],
)
def test_random_type(name, expected):
    p = LayerParam()
    p.set_param("random_type", name)
    assert p.random_type == expected


def test_invalid_random_type():
    with pytest.raises(CheckError, match="invalid random_type"):
        LayerParam().set_param("random_type", "bogus")


def test_unknown_name_is_ignored():
    p = LayerParam()
    p.set_param("no_such_thing", "9")
    assert p == LayerParam()


def test_bytes_round_trip():
    p = LayerParam()
    p.set_param("nhidden", "10")
    p.set_param("init_sigma", "0.5")
    p.set_param("random_type", "kaiming")
    p.reserved[3] = 42
    data = p.to_bytes()
    assert len(data) == LayerParam.SIZE
    assert LayerParam.from_bytes(data) == p


def test_layout_size():
    assert len(LayerParam().to_bytes()) == 328


def test_from_bytes_too_short():
    with pytest.raises(CheckError):
        LayerParam.from_bytes(b"\x00" * 10)


def test_uniform_init_bounds():
    p = LayerParam(random_type=1)
    rng = np.random.default_rng(0)
    w = p.rand_init_weight(rng, (20, 30), 1, 2)
    assert w.shape == (20, 30)
    assert w.dtype == np.float32
    assert np.all(np.abs(w) <= 1.0 + 1e-6)
    assert np.abs(w).max() > 0.5


def test_uniform_init_override():
    p = LayerParam(random_type=1, init_uniform=0.05)
    w = p.rand_init_weight(np.random.default_rng(1), (50, 50), 1, 1)
    assert np.all(np.abs(w) <= 0.05 + 1e-7)


def test_gaussian_init_statistics():
    p = LayerParam(random_type=0, init_sigma=0.5)
    w = p.rand_init_weight(np.random.default_rng(2), (200, 200), 10, 10)
    assert w.std() == pytest.approx(0.5, rel=0.05)
    assert abs(w.mean()) < 0.02


def test_kaiming_init_uses_hidden():
    p = LayerParam(random_type=2, num_hidden=8)
    w = p.rand_init_weight(np.random.default_rng(3), (300, 300), 1, 1)
    assert w.std() == pytest.approx(0.5, rel=0.05)


def test_other_random_type_gives_zeros():
    p = LayerParam(random_type=3)
    w = p.rand_init_weight(np.random.default_rng(4), (3, 4), 1, 1)
    assert np.array_equal(w, np.zeros((3, 4), dtype=np.float32))