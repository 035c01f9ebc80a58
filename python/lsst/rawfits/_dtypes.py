# This file is part of lsst-rawfits.
#
# Developed for the LSST Data Management System.
# This product includes software developed by the LSST Project
# (https://www.lsst.org).
# See the COPYRIGHT file at the top-level directory of this distribution
# for details of code ownership.
#
# Use of this source code is governed by a 3-clause BSD-style
# license that can be found in the LICENSE file.

from __future__ import annotations

__all__ = ("PixelType",)

import enum

import numpy as np

from ._errors import MalformedHeaderError


class PixelType(enum.StrEnum):
    """Enumeration of the image element encodings allowed by ``BITPIX``."""

    uint8 = enum.auto()
    int16 = enum.auto()
    int32 = enum.auto()
    int64 = enum.auto()
    float32 = enum.auto()
    float64 = enum.auto()

    @classmethod
    def from_bitpix(cls, bitpix: int) -> PixelType:
        """Construct an enumeration member from a ``BITPIX`` header value.

        Parameters
        ----------
        bitpix
            One of 8, 16, 32, 64, -32, or -64.

        Returns
        -------
        member
            Enumeration member.

        Raises
        ------
        MalformedHeaderError
            Raised if ``bitpix`` is not a valid ``BITPIX`` value.
        """
        match bitpix:
            case 8:
                return cls.uint8
            case 16:
                return cls.int16
            case 32:
                return cls.int32
            case 64:
                return cls.int64
            case -32:
                return cls.float32
            case -64:
                return cls.float64
        raise MalformedHeaderError(f"Invalid BITPIX value {bitpix!r}.")

    @property
    def bitpix(self) -> int:
        """The ``BITPIX`` value for this element type."""
        dtype = self.to_numpy()
        return -8 * dtype.itemsize if self.is_floating else 8 * dtype.itemsize

    @property
    def is_floating(self) -> bool:
        """Whether elements are IEEE floating point numbers."""
        return self.to_numpy().kind == "f"

    def to_numpy(self) -> np.dtype:
        """Return the native-byte-order `numpy.dtype` for this element type."""
        return np.dtype(self.value)

    def to_stored(self) -> np.dtype:
        """Return the big-endian `numpy.dtype` used in FITS data sections."""
        return self.to_numpy().newbyteorder(">")
