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

__all__ = ("HduClass", "Unit")

import enum
from typing import final

import numpy as np

from ._header import Header
from ._image import ImageData
from ._table import FieldAccessor, TableData, absent_field


class HduClass(enum.StrEnum):
    """The kinds of header/data unit this package decodes."""

    SIMPLE = "SIMPLE"
    IMAGE = "IMAGE"
    TABLE = "TABLE"
    BINTABLE = "BINTABLE"

    @property
    def is_image(self) -> bool:
        """Whether units of this class hold image data."""
        return self is HduClass.SIMPLE or self is HduClass.IMAGE


@final
class Unit:
    """A decoded header/data unit (HDU).

    Parameters
    ----------
    header
        The decoded header.
    hdu_class
        Kind of HDU.
    data, optional
        Decoded data section: an `ImageData` for image HDUs or a `TableData`
        for table HDUs.  `None` if the HDU has no data (or the data was not
        read).

    Notes
    -----
    Pixel accessors take one zero-based coordinate per axis, ``NAXIS1``
    first.  Table accessors take a zero-based column index or a
    (case-sensitive) column name; they never raise for unknown columns or
    rows.
    """

    def __init__(self, header: Header, hdu_class: HduClass, data: ImageData | TableData | None = None):
        if isinstance(data, ImageData) and not hdu_class.is_image:
            raise TypeError(f"{hdu_class} HDU cannot hold image data.")
        if isinstance(data, TableData) and hdu_class.is_image:
            raise TypeError(f"{hdu_class} HDU cannot hold table data.")
        self._header = header
        self._hdu_class = hdu_class
        self._data = data

    @property
    def header(self) -> Header:
        """The header keyword/value mapping."""
        return self._header

    @property
    def hdu_class(self) -> HduClass:
        """Kind of HDU."""
        return self._hdu_class

    @property
    def naxis(self) -> tuple[int, ...]:
        """Axis extents, ``NAXIS1`` first."""
        return self._header.naxis

    @property
    def bitpix(self) -> int | None:
        """The ``BITPIX`` header value."""
        return self._header.get_int("BITPIX")

    @property
    def image(self) -> ImageData | None:
        """Decoded image data, if any."""
        return self._data if isinstance(self._data, ImageData) else None

    @property
    def table(self) -> TableData | None:
        """Decoded table data, if any."""
        return self._data if isinstance(self._data, TableData) else None

    @property
    def data(self) -> np.ndarray | bytes | None:
        """The raw payload: the flat pixel buffer of an image or the row-major
        byte blob of a table.
        """
        match self._data:
            case ImageData():
                return self._data.pixels
            case TableData():
                return self._data.blob
        return None

    @property
    def has_image(self) -> bool:
        """Whether this unit holds a non-empty image."""
        return self.image is not None and len(self.naxis) > 0 and self.naxis[0] > 0

    @property
    def has_table(self) -> bool:
        """Whether this unit holds a table."""
        return self.table is not None

    def _require_image(self) -> ImageData:
        if (image := self.image) is None:
            raise TypeError(f"{self._hdu_class} HDU has no image data.")
        return image

    def at(self, *coords: int) -> np.generic:
        """Return a pixel value with its stored element type."""
        return self._require_image().at(*coords)

    def int_at(self, *coords: int) -> int:
        """Return a pixel value as an `int`.

        See `ImageData.int_at`; NaN and infinite pixels cannot be converted,
        so test `is_blank` first on floating-point images.
        """
        return self._require_image().int_at(*coords)

    def float_at(self, *coords: int) -> float:
        """Return a pixel value as a `float`."""
        return self._require_image().float_at(*coords)

    def is_blank(self, *coords: int) -> bool:
        """Test whether a pixel is undefined."""
        return self._require_image().is_blank(*coords)

    def stats(self) -> tuple[float, float]:
        """Return the minimum and maximum of the non-blank pixels, or
        ``(0.0, 0.0)`` if there are none.
        """
        if (image := self.image) is None:
            return 0.0, 0.0
        return image.stats()

    def field(self, col: int | str) -> FieldAccessor:
        """Return the accessor for a table column."""
        if (table := self.table) is None:
            return absent_field
        return table.field(col)

    def format(self, col: int | str, row: int) -> str:
        """Render a table cell with its column's display directive."""
        if (table := self.table) is None:
            return ""
        return table.format(col, row)

    def __str__(self) -> str:
        return f"Unit({self._hdu_class}, naxis={list(self.naxis)})"

    def __repr__(self) -> str:
        return f"Unit({self._header!r}, {self._hdu_class!r}, data={self._data!r})"
