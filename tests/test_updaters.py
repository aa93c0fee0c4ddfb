import numpy as np
import pytest

from meshnet.errors import CheckError, InternalError
from meshnet.updaters import AdamUpdater, NAGUpdater, UpdaterParam


def test_constant_schedule_uses_base_lr():
    p = UpdaterParam()
    p.set_param("lr", "0.5")
    p.schedule_epoch(10)
    assert p.learning_rate == pytest.approx(0.5)
    assert p.base_lr == pytest.approx(0.5)


def test_eta_alias_sets_base_lr():
    p = UpdaterParam()
    p.set_param("eta", "0.25")
    assert p.base_lr == pytest.approx(0.25)


def test_tag_prefix_only_applies_to_own_tag():
    p = UpdaterParam(tag="bias")
    p.set_param("bias:wd", "0.5")
    assert p.wd == pytest.approx(0.5)
    p.set_param("wmat:wd", "0.75")
    assert p.wd == pytest.approx(0.5)


def test_expdecay_is_decreasing():
    p = UpdaterParam()
    p.set_param("lr:schedule", "expdecay")
    rates = []
    for epoch in range(5):
        p.schedule_epoch(epoch)
        rates.append(p.learning_rate)
    assert rates[0] == pytest.approx(p.base_lr)
    assert all(a > b for a, b in zip(rates, rates[1:]))


def test_factor_schedule_steps():
    p = UpdaterParam()
    p.set_param("lr:schedule", "factor")
    p.set_param("lr:step", "2")
    p.schedule_epoch(0)
    first = p.learning_rate
    p.schedule_epoch(1)
    assert p.learning_rate == pytest.approx(first)
    p.schedule_epoch(2)
    assert p.learning_rate == pytest.approx(first * p.lr_factor)


def test_minimum_lr_clamp():
    p = UpdaterParam()
    p.set_param("lr:schedule", "factor")
    p.set_param("eta:factor", "0")
    p.schedule_epoch(3)
    assert p.learning_rate == pytest.approx(p.lr_minimum)


def test_start_epoch_keeps_base_lr():
    p = UpdaterParam()
    p.set_param("lr:schedule", "factor")
    p.set_param("lr:start_epoch", "5")
    p.schedule_epoch(3)
    assert p.learning_rate == pytest.approx(p.base_lr)


def test_unknown_schedule_value_is_ignored():
    p = UpdaterParam()
    p.set_param("lr:schedule", "bogus")
    assert p.lr_schedule == 0


def test_invalid_schedule_raises():
    p = UpdaterParam(lr_schedule=7)
    with pytest.raises(CheckError):
        p.schedule_epoch(0)


def test_momentum_capped_at_final():
    p = UpdaterParam()
    p.set_param("momentum", "0.99")
    p.schedule_epoch(0)
    assert p.momentum == pytest.approx(p.final_momentum)


def test_adam_first_step_moves_by_lr():
    w = np.zeros(4, dtype=np.float32)
    dw = np.array([1.0, -2.0, 3.0, -4.0], dtype=np.float32)
    up = AdamUpdater(w, dw, "wmat")
    up.set_param("silent", "1")
    up.init()
    up.update(0)
    expected = -up.param.base_lr * np.sign([1.0, -2.0, 3.0, -4.0])
    np.testing.assert_allclose(w, expected, rtol=1e-3)
    assert np.all(dw == 0.0)


def test_adam_zero_gradient_keeps_weight():
    w = np.ones((2, 3), dtype=np.float32)
    dw = np.zeros((2, 3), dtype=np.float32)
    up = AdamUpdater(w, dw, "wmat")
    up.set_param("silent", "1")
    up.init()
    up.update(0)
    np.testing.assert_array_equal(w, np.ones((2, 3), dtype=np.float32))


def test_adam_explicit_grad_shape_checked():
    w = np.zeros((2, 3, 4), dtype=np.float32)
    up = AdamUpdater(w, np.zeros_like(w), "wmat")
    up.set_param("silent", "1")
    up.init()
    with pytest.raises(InternalError):
        up.update(0, np.zeros((2, 3, 4), dtype=np.float32))
    up.update(0, np.ones((6, 4), dtype=np.float32))
    assert np.all(w < 0)


def test_adam_beta_params():
    up = AdamUpdater(np.zeros(2, np.float32), np.zeros(2, np.float32), "bias")
    up.set_param("beta1", "0.2")
    up.set_param("beta2", "0.01")
    assert up.decay1 == pytest.approx(0.2)
    assert up.decay2 == pytest.approx(0.01)


def test_nag_without_momentum_is_sgd():
    w = np.zeros(3, dtype=np.float32)
    dw = np.array([1.0, 2.0, -1.0], dtype=np.float32)
    up = NAGUpdater(w, dw, "wmat")
    up.set_param("silent", "1")
    up.set_param("momentum", "0")
    up.init()
    up.update(0)
    np.testing.assert_allclose(w, -up.param.base_lr * np.array([1.0, 2.0, -1.0]), rtol=1e-5)
    assert np.all(dw == 0.0)


def test_nag_weight_decay():
    w = np.ones(2, dtype=np.float32)
    dw = np.zeros(2, dtype=np.float32)
    up = NAGUpdater(w, dw, "wmat")
    up.set_param("silent", "1")
    up.set_param("momentum", "0")
    up.set_param("wd", "0.1")
    up.init()
    up.update(0)
    np.testing.assert_allclose(w, 1 - up.param.base_lr * up.param.wd, rtol=1e-5)


def test_nag_prints_settings(capsys):
    up = NAGUpdater(np.zeros(1, np.float32), np.zeros(1, np.float32), "wmat")
    up.init()
    assert capsys.readouterr().out == "NAGUpdater: eta=0.010000, mom=0.900000\n"


def test_silent_suppresses_output(capsys):
    up = AdamUpdater(np.zeros(1, np.float32), np.zeros(1, np.float32), "wmat")
    up.set_param("silent", "1")
    up.init()
    assert capsys.readouterr().out == ""


def test_visitor_and_start_round():
    w = np.zeros(2, dtype=np.float32)
    dw = np.zeros(2, dtype=np.float32)
    up = NAGUpdater(w, dw, "bias")
    seen = []
    up.apply_visitor(lambda name, a, b: seen.append((name, a, b)))
    assert seen[0][0] == "bias"
    assert seen[0][1] is w and seen[0][2] is dw
    up.start_round(4)
    assert up.param.round == 4