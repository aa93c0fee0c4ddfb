"""Iterator that crops, mirrors, normalises and perturbs image instances."""

from __future__ import annotations

import re
import sys
import time
from typing import Optional

import numpy as np

from .data import DataInst, DataIterator
from .errors import CheckError, assert_that, check
from .layer_param import _atof, _atoi, _f32
from .layers import _load_tensor, _save_tensor
from .streams import StdFile

_RAND_MAGIC = 0

_INT3_RE = re.compile(r"\s*\+?(\d+),\s*\+?(\d+),\s*\+?(\d+)")
_NUM = r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
_FLOAT3_RE = re.compile(_NUM + "," + _NUM + "," + _NUM)


def _crop(x: np.ndarray, height: int, width: int, yy: int, xx: int) -> np.ndarray:
    out = x[:, yy:yy + height, xx:xx + width]
    assert_that(
        out.shape[1:] == (height, width), "AugmentIterator: crop exceeds the image"
    )
    return out


def _mirror(x: np.ndarray) -> np.ndarray:
    return x[..., ::-1]


class AugmentIterator(DataIterator[DataInst]):
    """Apply cropping, mirroring, mean subtraction and scaling to instances."""

    def __init__(self, base: DataIterator[DataInst]) -> None:
        self.base = base
        self.shape: Optional[tuple[int, int, int]] = None
        self.rand_crop = 0
        self.rand_mirror = 0
        self.crop_y_start = -1
        self.crop_x_start = -1
        self.scale = 1.0
        self.silent = 0
        self.name_meanimg = ""
        self.mean_r = 0.0
        self.mean_g = 0.0
        self.mean_b = 0.0
        self.mirror = 0
        self.max_random_illumination = 0.0
        self.max_random_contrast = 0.0
        self.meanimg: Optional[np.ndarray] = None
        self.meanfile_ready = False
        self._img: Optional[np.ndarray] = None
        self._out = DataInst()
        self._rng = np.random.default_rng(_RAND_MAGIC)

    def set_param(self, name: str, val: str) -> None:
        self.base.set_param(name, val)
        if name == "input_shape":
            m = _INT3_RE.match(val)
            check(
                m is not None,
                "input_shape must be three consecutive integers without space "
                "example: 1,1,200 ",
            )
            self.shape = tuple(int(g) for g in m.groups())
        if name == "seed_data":
            self._rng = np.random.default_rng(_RAND_MAGIC + _atoi(val))
        if name == "rand_crop":
            self.rand_crop = _atoi(val)
        if name == "silent":
            self.silent = _atoi(val)
        if name == "divideby":
            divisor = _atof(val)
            self.scale = _f32(1.0 / divisor) if divisor else float("inf")
        if name == "scale":
            self.scale = _f32(_atof(val))
        if name == "image_mean":
            self.name_meanimg = val
        if name == "crop_y_start":
            self.crop_y_start = _atoi(val)
        if name == "crop_x_start":
            self.crop_x_start = _atoi(val)
        if name == "rand_mirror":
            self.rand_mirror = _atoi(val)
        if name == "mirror":
            self.mirror = _atoi(val)
        if name == "max_random_contrast":
            self.max_random_contrast = _f32(_atof(val))
        if name == "max_random_illumination":
            self.max_random_illumination = _f32(_atof(val))
        if name == "mean_value":
            m = _FLOAT3_RE.match(val)
            check(
                m is not None,
                "mean value must be three consecutive float without space "
                "example: 128,127.5,128.2 ",
            )
            self.mean_b, self.mean_g, self.mean_r = (_f32(float(g)) for g in m.groups())

    def init(self) -> None:
        self.base.init()
        self.meanfile_ready = False
        if not self.name_meanimg:
            return
        try:
            stream = StdFile(self.name_meanimg, "rb")
        except CheckError:
            self._create_mean_img()
            return
        if self.silent == 0:
            print("loading mean image from %s" % self.name_meanimg)
        with stream:
            self.meanimg = _load_tensor(stream, 3)
        self.meanfile_ready = True

    def before_first(self) -> None:
        self.base.before_first()

    def next(self) -> bool:
        if not self.base.next():
            return False
        self._set_data(self.base.value())
        return True

    def value(self) -> DataInst:
        return self._out

    def _chance(self) -> bool:
        return self.rand_mirror != 0 and self._rng.random() < 0.5

    def _set_data(self, d: DataInst) -> None:
        check(self.shape is not None, "AugmentIterator: input_shape must be set")
        _, sh, sw = self.shape
        data = np.asarray(d.data, dtype=np.float32)
        scale = np.float32(self.scale)
        if sh == 1:
            assert_that(
                data.shape[1:] == (sh, sw), "AugmentIterator: data shape mismatch"
            )
            img = data * scale
        else:
            height, width = data.shape[1], data.shape[2]
            assert_that(
                height >= sh and width >= sw,
                "Data size must be bigger than the input size to net.",
            )
            yy = height - sh
            xx = width - sw
            if self.rand_crop != 0 and (yy != 0 or xx != 0):
                yy = int(self._rng.integers(yy + 1))
                xx = int(self._rng.integers(xx + 1))
            else:
                yy //= 2
                xx //= 2
            if height != sh and self.crop_y_start != -1:
                yy = self.crop_y_start
            if width != sw and self.crop_x_start != -1:
                xx = self.crop_x_start
            max_c = self.max_random_contrast
            max_i = self.max_random_illumination
            contrast = np.float32(self._rng.random() * max_c * 2 - max_c + 1)
            illumination = np.float32(self._rng.random() * max_i * 2 - max_i)
            if self.mean_r > 0.0 or self.mean_g > 0.0 or self.mean_b > 0.0:
                data = data.copy()
                data[0] -= np.float32(self.mean_b)
                data[1] -= np.float32(self.mean_g)
                data[2] -= np.float32(self.mean_r)
                adjusted = _crop(data * contrast + illumination, sh, sw, yy, xx)
                if self._chance() or self.mirror == 1:
                    adjusted = _mirror(adjusted)
                img = adjusted * scale
            elif not self.meanfile_ready or not self.name_meanimg:
                cropped = _crop(data, sh, sw, yy, xx)
                if self._chance():
                    cropped = _mirror(cropped)
                img = cropped * scale
            else:
                mean = self.meanimg
                flip = self._chance() or self.mirror == 1
                if data.shape == mean.shape:
                    cropped = _crop((data - mean) * contrast + illumination, sh, sw, yy, xx)
                    img = (_mirror(cropped) if flip else cropped) * scale
                else:
                    cropped = _crop(data, sh, sw, yy, xx)
                    if flip:
                        cropped = _mirror(cropped - mean)
                    else:
                        cropped = cropped - mean
                    img = (cropped * contrast + illumination) * scale
        self._img = np.ascontiguousarray(img, dtype=np.float32)
        self._out = DataInst(index=d.index, label=d.label, data=self._img)

    def _create_mean_img(self) -> None:
        if self.silent == 0:
            print(
                "cannot find %s: create mean image, this will take some time..."
                % self.name_meanimg
            )
        start = time.monotonic()
        count = 1
        assert_that(self.next(), "input iterator failed.")
        total = np.array(self._img, dtype=np.float32)
        while self.next():
            total += self._img
            count += 1
            elapsed = int(time.monotonic() - start)
            if count % 1000 == 0 and self.silent == 0:
                sys.stdout.write("\r" + " " * 63 + "\r")
                sys.stdout.write(
                    "[%8d] images processed, %d sec elapsed" % (count, elapsed)
                )
                sys.stdout.flush()
        total *= np.float32(1.0 / count)
        self.meanimg = total
        with StdFile(self.name_meanimg, "wb") as fo:
            _save_tensor(fo, total)
        if self.silent == 0:
            print("save mean image to %s.." % self.name_meanimg)
        self.before_first()