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

__all__ = ("ImageData", "load_image", "pixel_index")

import math
from collections.abc import Sequence
from logging import getLogger
from typing import final

import numpy as np

from ._block_reader import BlockReader
from ._dtypes import PixelType
from ._errors import MalformedHeaderError
from ._header import Header
from .utils import is_integer

_LOG = getLogger(__name__)


def pixel_index(coords: Sequence[int], naxis: Sequence[int]) -> int:
    """Return the offset of a pixel in a flat buffer.

    Parameters
    ----------
    coords
        Zero-based coordinates, first axis first.
    naxis
        Axis extents, ``NAXIS1`` first.

    Returns
    -------
    offset
        Flat offset, with the first axis varying fastest.

    Raises
    ------
    IndexError
        Raised if the number of coordinates does not match the number of axes
        or a coordinate is out of range.
    """
    if len(coords) != len(naxis):
        raise IndexError(f"Expected {len(naxis)} pixel coordinates; got {len(coords)}.")
    offset = 0
    for c, n in zip(reversed(coords), reversed(naxis)):
        if not 0 <= c < n:
            raise IndexError(f"Pixel coordinate {c} is out of range for an axis of size {n}.")
        offset = offset * n + c
    return offset


@final
class ImageData:
    """The decoded pixel buffer of an image HDU.

    Parameters
    ----------
    pixels
        Flat array of pixel values, first axis varying fastest.
    naxis
        Axis extents, ``NAXIS1`` first.
    pixel_type
        Element encoding of the pixels.
    blank, optional
        Value of the ``BLANK`` keyword, if any.  Ignored for floating-point
        images, whose blank pixels are NaN.

    Notes
    -----
    Stored values are never rescaled by ``BSCALE`` or ``BZERO``.
    """

    def __init__(
        self,
        pixels: np.ndarray,
        naxis: Sequence[int],
        pixel_type: PixelType,
        blank: int | None = None,
    ):
        if pixels.shape != (math.prod(naxis),):
            raise ValueError(f"Pixel buffer with shape {pixels.shape} does not match NAXIS={list(naxis)}.")
        pixels = pixels.view()
        pixels.setflags(write=False)
        self._pixels = pixels
        self._naxis = tuple(naxis)
        self._pixel_type = pixel_type
        self._blank = None if pixel_type.is_floating else blank

    @property
    def pixels(self) -> np.ndarray:
        """The flat, read-only pixel buffer."""
        return self._pixels

    @property
    def array(self) -> np.ndarray:
        """A read-only view of the pixels with shape ``(NAXISn, ..., NAXIS1)``.

        This is the usual numpy (row-major) view of a FITS image, so
        ``array[y, x]`` is the pixel at ``at(x, y)``.
        """
        return self._pixels.reshape(self._naxis[::-1])

    @property
    def naxis(self) -> tuple[int, ...]:
        """Axis extents, ``NAXIS1`` first."""
        return self._naxis

    @property
    def pixel_type(self) -> PixelType:
        """Element encoding of the pixels."""
        return self._pixel_type

    @property
    def blank(self) -> int | None:
        """The integer value that marks undefined pixels, if any."""
        return self._blank

    def at(self, *coords: int) -> np.generic:
        """Return a pixel value with its stored element type."""
        return self._pixels[pixel_index(coords, self._naxis)]

    def int_at(self, *coords: int) -> int:
        """Return a pixel value as a Python `int`.

        Floating-point values are truncated toward zero.  NaN raises
        `ValueError` and infinities raise `OverflowError`, so test `is_blank`
        first on floating-point images.
        """
        return int(self.at(*coords))

    def float_at(self, *coords: int) -> float:
        """Return a pixel value as a Python `float`."""
        return float(self.at(*coords))

    def is_blank(self, *coords: int) -> bool:
        """Test whether a pixel is undefined.

        Integer pixels are blank if they equal `blank`; floating-point pixels
        are blank if they are NaN.
        """
        value = self.at(*coords)
        if self._pixel_type.is_floating:
            return bool(np.isnan(value))
        return self._blank is not None and int(value) == self._blank

    def blank_mask(self) -> np.ndarray:
        """Return a flat boolean array that is `True` for undefined pixels."""
        if self._pixel_type.is_floating:
            return np.isnan(self._pixels)
        info = np.iinfo(self._pixels.dtype)
        if self._blank is None or not info.min <= self._blank <= info.max:
            return np.zeros(self._pixels.shape, dtype=bool)
        return self._pixels == self._blank

    def stats(self) -> tuple[float, float]:
        """Return the minimum and maximum of all pixels that are not blank.

        Returns ``(0.0, 0.0)`` if there are no such pixels.
        """
        good = self._pixels[~self.blank_mask()]
        if good.size == 0:
            return 0.0, 0.0
        return float(good.min()), float(good.max())

    def __str__(self) -> str:
        return f"ImageData({'x'.join(str(n) for n in self._naxis)}, {self._pixel_type})"

    def __repr__(self) -> str:
        return f"ImageData(..., naxis={self._naxis!r}, pixel_type={self._pixel_type!r})"


def load_image(reader: BlockReader, header: Header) -> ImageData:
    """Read the data section of an image HDU.

    Parameters
    ----------
    reader
        Block reader positioned at the start of the data section.
    header
        Validated header of the HDU; ``BITPIX`` must be present and valid.

    Returns
    -------
    image
        The decoded pixel buffer.
    """
    bitpix = header.get_int("BITPIX")
    if bitpix is None:
        raise MalformedHeaderError("No BITPIX in the image header.")
    pixel_type = PixelType.from_bitpix(bitpix)
    blank: int | None = None
    if not pixel_type.is_floating and "BLANK" in header and header["BLANK"] is not None:
        value = header["BLANK"]
        if not is_integer(value):
            raise MalformedHeaderError(f"BLANK value {value!r} is not an integer.")
        blank = value
    count = math.prod(header.naxis)
    pixels = reader.read_array(pixel_type.to_stored(), count)
    if len(pixels) < count:
        _LOG.warning(
            "Image data truncated: expected %d pixels, got %d; padding with zeros.", count, len(pixels)
        )
        pixels = np.concatenate([pixels, np.zeros(count - len(pixels), dtype=pixels.dtype)])
    return ImageData(pixels, header.naxis, pixel_type, blank=blank)
