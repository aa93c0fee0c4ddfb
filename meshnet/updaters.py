"""Weight updaters (Adam and Nesterov momentum) and their shared parameters."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import assert_that, error
from .layer_base import Visitor
from .layer_param import _atof, _atoi, _f32

_SCHEDULES = {"constant": 0, "expdecay": 1, "polydecay": 2, "factor": 3}

_FLOAT_KEYS = {
    "lr": "base_lr",
    "eta": "base_lr",
    "wd": "wd",
    "momentum": "momentum",
    "clip_gradient": "clip_gradient",
    "final_momentum": "final_momentum",
    "base_momentum": "base_momentum",
}
_INT_KEYS = {
    "silent": "silent",
    "momentum_schedule": "momentum_schedule",
    "saturation_epoch": "saturation_epoch",
}
_LR_FLOAT_KEYS = {
    "gamma": "lr_gamma",
    "alpha": "lr_alpha",
    "factor": "lr_factor",
    "minimum_lr": "lr_minimum",
}
_LR_INT_KEYS = {"step": "lr_step", "start_epoch": "start_epoch"}


def _idiv(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _flat_to_2d(shape: tuple[int, ...]) -> tuple[int, int]:
    """Shape of an array viewed as a matrix over its last axis."""
    if not shape:
        return (1, 1)
    rows = 1
    for s in shape[:-1]:
        rows *= s
    return (rows, shape[-1])


@dataclass
class UpdaterParam:
    """Learning-rate, momentum and decay settings of one parameter group."""

    tag: str = ""
    round: int = 0
    silent: int = 0
    learning_rate: float = 0.0
    wd: float = 0.0
    momentum: float = 0.9
    lr_schedule: int = 0
    momentum_schedule: int = 0
    base_lr: float = 0.01
    lr_step: int = 1
    lr_gamma: float = 0.5
    lr_alpha: float = 0.5
    lr_factor: float = 0.1
    lr_minimum: float = 0.00001
    start_epoch: int = 0
    base_momentum: float = 0.5
    final_momentum: float = 0.9
    saturation_epoch: int = 0
    clip_gradient: float = 0.0

    def __post_init__(self) -> None:
        for name in (
            "wd", "momentum", "base_lr", "lr_gamma", "lr_alpha", "lr_factor",
            "lr_minimum", "base_momentum", "final_momentum", "clip_gradient",
        ):
            setattr(self, name, _f32(getattr(self, name)))

    def schedule_epoch(self, epoch: int) -> None:
        """Compute the learning rate and momentum for ``epoch``."""
        if self.lr_schedule == 0:
            lr = self.base_lr
        elif self.lr_schedule == 1:
            lr = self.base_lr * self.lr_gamma ** (float(epoch) / self.lr_step)
        elif self.lr_schedule == 2:
            base = 1.0 + _idiv(epoch, self.lr_step) * self.lr_gamma
            lr = self.base_lr * base ** (-self.lr_alpha)
        elif self.lr_schedule == 3:
            lr = self.base_lr * self.lr_factor ** _idiv(epoch, self.lr_step)
        else:
            error("unknown schedule type")
            return
        self.learning_rate = _f32(lr)
        if self.momentum_schedule and self.saturation_epoch:
            step = (self.final_momentum - self.base_momentum) / self.saturation_epoch
            self.momentum = _f32(self.momentum + step * epoch + self.base_momentum)
        self.momentum = min(self.momentum, self.final_momentum)
        self.learning_rate = max(self.learning_rate, self.lr_minimum)
        if epoch < self.start_epoch:
            self.learning_rate = self.base_lr

    def set_param(self, name: str, val: str) -> None:
        """Set a parameter; ``<tag>:<name>`` applies only to this group's tag."""
        taglen = len(self.tag)
        if name.startswith(self.tag) and name[taglen:taglen + 1] == ":":
            name = name[taglen + 1:]
        if name in _FLOAT_KEYS:
            setattr(self, _FLOAT_KEYS[name], _f32(_atof(val)))
        elif name in _INT_KEYS:
            setattr(self, _INT_KEYS[name], _atoi(val))
        for prefix in ("lr:", "eta:"):
            if name.startswith(prefix):
                key = name[len(prefix):]
                if key == "schedule" and val in _SCHEDULES:
                    self.lr_schedule = _SCHEDULES[val]
                if key in _LR_FLOAT_KEYS:
                    setattr(self, _LR_FLOAT_KEYS[key], _f32(_atof(val)))
                if key in _LR_INT_KEYS:
                    setattr(self, _LR_INT_KEYS[key], _atoi(val))
                break


class _Updater(ABC):
    """Shared state of updaters bound to a weight and its gradient."""

    def __init__(self, w: np.ndarray, dw: np.ndarray, tag: str) -> None:
        self.param = UpdaterParam(tag=tag)
        self.w = w
        self.dw = dw

    def _step(self, epoch: int, grad: Optional[np.ndarray]) -> None:
        if grad is None:
            self._apply_update(epoch, self.dw)
            self.dw[...] = 0.0
            return
        grad = np.asarray(grad, dtype=np.float32)
        assert_that(
            grad.shape == _flat_to_2d(self.w.shape),
            "SGDUpdater: grad must be generated from source of same shape",
        )
        self._apply_update(epoch, grad.reshape(self.w.shape))

    @abstractmethod
    def _apply_update(self, epoch: int, grad: np.ndarray) -> None:
        """Apply one step with the gradient ``grad`` shaped like ``w``."""


class AdamUpdater(_Updater):
    """Adam with bias-corrected first and second moment estimates."""

    def __init__(self, w: np.ndarray, dw: np.ndarray, tag: str) -> None:
        super().__init__(w, dw, tag)
        self.decay1 = _f32(0.1)
        self.decay2 = _f32(0.001)
        self.m_w1 = np.zeros_like(w, dtype=np.float32)
        self.m_w2 = np.zeros_like(w, dtype=np.float32)

    def init(self) -> None:
        """Reset the moment estimates, reporting the settings unless silent."""
        if self.param.silent == 0:
            print(
                "AdamUpdater: eta=%f, beta1=%f, beta2=%f"
                % (self.param.base_lr, self.decay1, self.decay2)
            )
        self.m_w1 = np.zeros(self.w.shape, dtype=np.float32)
        self.m_w2 = np.zeros(self.w.shape, dtype=np.float32)

    def update(self, epoch: int, grad: Optional[np.ndarray] = None) -> None:
        """Apply one step.

        Without ``grad`` the accumulated gradient ``dw`` is used and then
        reset to zero; otherwise ``grad`` must be ``w`` flattened to a matrix.
        """
        self._step(epoch, grad)

    def start_round(self, round_: int) -> None:
        """Record the start of a new round."""
        self.param.round = round_

    def set_param(self, name: str, val: str) -> None:
        """Set a parameter from configuration strings."""
        self.param.set_param(name, val)
        if name == "beta1":
            self.decay1 = _f32(_atof(val))
        if name == "beta2":
            self.decay2 = _f32(_atof(val))

    def apply_visitor(self, visitor: Visitor) -> None:
        """Call ``visitor(tag, weight, grad)``."""
        visitor(self.param.tag, self.w, self.dw)

    def _apply_update(self, epoch: int, grad: np.ndarray) -> None:
        if self.param.wd > 0.0:
            grad = grad - np.float32(self.param.wd) * self.w
        fix1 = 1.0 - (1.0 - self.decay1) ** (epoch + 1)
        fix2 = 1.0 - (1.0 - self.decay2) ** (epoch + 1)
        lr_t = np.float32(self.param.base_lr * math.sqrt(fix2) / fix1)
        self.m_w1 += np.float32(self.decay1) * (grad - self.m_w1)
        self.m_w2 += np.float32(self.decay2) * (np.square(grad) - self.m_w2)
        self.w -= lr_t * (self.m_w1 / (np.sqrt(self.m_w2) + np.float32(1e-8)))


class NAGUpdater(_Updater):
    """Stochastic gradient descent with Nesterov accelerated momentum."""

    def __init__(self, w: np.ndarray, dw: np.ndarray, tag: str) -> None:
        super().__init__(w, dw, tag)
        self.m_w = np.zeros_like(w, dtype=np.float32)
        self.old_m_w = np.zeros_like(w, dtype=np.float32)

    def init(self) -> None:
        """Reset the momentum, reporting the settings unless silent."""
        if self.param.silent == 0:
            print(
                "NAGUpdater: eta=%f, mom=%f"
                % (self.param.base_lr, self.param.momentum)
            )
        self.m_w = np.zeros(self.w.shape, dtype=np.float32)
        self.old_m_w = np.zeros(self.w.shape, dtype=np.float32)

    def update(self, epoch: int, grad: Optional[np.ndarray] = None) -> None:
        """Apply one step.

        Without ``grad`` the accumulated gradient ``dw`` is used and then
        reset to zero; otherwise ``grad`` must be ``w`` flattened to a matrix.
        """
        self._step(epoch, grad)

    def start_round(self, round_: int) -> None:
        """Record the start of a new round."""
        self.param.round = round_

    def set_param(self, name: str, val: str) -> None:
        """Set a parameter from configuration strings."""
        self.param.set_param(name, val)

    def apply_visitor(self, visitor: Visitor) -> None:
        """Call ``visitor(tag, weight, grad)``."""
        visitor(self.param.tag, self.w, self.dw)

    def _apply_update(self, epoch: int, grad: np.ndarray) -> None:
        p = self.param
        p.schedule_epoch(epoch)
        mom = np.float32(p.momentum)
        self.old_m_w[...] = self.m_w
        self.m_w *= mom
        self.m_w += np.float32(-p.learning_rate) * (grad + np.float32(p.wd) * self.w)
        self.w += (1 + mom) * self.m_w - mom * self.old_m_w