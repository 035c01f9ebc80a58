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

__all__ = ("DecodeOptions", "DecodeResult", "data_size", "decode")

import dataclasses
import io
import math
from collections.abc import Iterator
from logging import getLogger
from typing import IO, ClassVar, overload

from ._block_reader import BlockReader
from ._dtypes import PixelType
from ._errors import FitsDecodeError, MalformedHeaderError
from ._header import Header, read_header
from ._image import ImageData, load_image
from ._table import TableData, load_binary_table, load_text_table
from ._unit import HduClass, Unit

_LOG = getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DecodeOptions:
    """Configuration options for `decode`."""

    read_data: bool = True
    """Whether to decode data sections.

    When `False`, data sections are skipped and every unit holds only its
    header.
    """

    max_units: int | None = None
    """Maximum number of units to decode (`None` for no limit)."""

    DEFAULT: ClassVar[DecodeOptions]
    """Default options (decode everything)."""


DecodeOptions.DEFAULT = DecodeOptions()


@dataclasses.dataclass(frozen=True)
class DecodeResult:
    """The units decoded from a FITS stream, and the error that stopped
    decoding early, if any.

    Iterating over or indexing a `DecodeResult` is equivalent to doing so on
    its `units`.
    """

    units: tuple[Unit, ...]
    """Units decoded successfully, in stream order."""

    error: FitsDecodeError | None = None
    """The error that ended decoding, or `None` if the stream was decoded to
    its end (or to a header that does not start a supported unit).
    """

    def raise_for_error(self) -> None:
        """Raise `error` if it is not `None`."""
        if self.error is not None:
            raise self.error

    def __iter__(self) -> Iterator[Unit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    @overload
    def __getitem__(self, index: int) -> Unit: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Unit, ...]: ...

    def __getitem__(self, index: int | slice) -> Unit | tuple[Unit, ...]:
        return self.units[index]


def data_size(header: Header) -> int:
    """Return the size in bytes of the data section that follows a header.

    This is ``|BITPIX| / 8 * GCOUNT * (PCOUNT + NAXIS1 * ... * NAXISn)``, or
    zero when there are no axes.
    """
    if not header.naxis:
        return 0
    bitpix = header.get_int("BITPIX") or 0
    pcount = header.get_int("PCOUNT") or 0
    gcount = header.get_int("GCOUNT")
    if gcount is None:
        gcount = 1
    return abs(bitpix) // 8 * gcount * (pcount + math.prod(header.naxis))


def _classify(header: Header, index: int) -> HduClass | None:
    if index == 0:
        return HduClass.SIMPLE if "SIMPLE" in header else None
    match header.get_str("XTENSION"):
        case "IMAGE":
            return HduClass.IMAGE
        case "TABLE":
            return HduClass.TABLE
        case "BINTABLE":
            return HduClass.BINTABLE
    return None


def _verify_common(header: Header, what: str) -> tuple[int, int]:
    bitpix = header.get_int("BITPIX")
    if bitpix is None:
        raise MalformedHeaderError(f"No BITPIX in the {what} header.")
    PixelType.from_bitpix(bitpix)
    naxis = header.get_int("NAXIS")
    if naxis is None:
        raise MalformedHeaderError(f"No NAXIS in the {what} header.")
    if len(header.naxis) != naxis:
        raise MalformedHeaderError(f"NAXIS={naxis} does not match {len(header.naxis)} NAXISn cards.")
    return bitpix, naxis


def _verify_primary(header: Header) -> None:
    _verify_common(header, "primary")


def _verify_extension(header: Header, hdu_class: HduClass) -> None:
    bitpix, naxis = _verify_common(header, "extension")
    pcount = header.get_int("PCOUNT")
    if pcount is None:
        raise MalformedHeaderError("No PCOUNT in the extension header.")
    if header.get_int("GCOUNT") is None:
        raise MalformedHeaderError("No GCOUNT in the extension header.")
    match hdu_class:
        case HduClass.IMAGE:
            if pcount != 0:
                raise MalformedHeaderError("PCOUNT should be 0 in IMAGE headers.")
        case HduClass.TABLE | HduClass.BINTABLE:
            if bitpix != 8:
                raise MalformedHeaderError("BITPIX should be 8 in TABLE/BINTABLE headers.")
            if naxis != 2:
                raise MalformedHeaderError("NAXIS should be 2 in TABLE/BINTABLE headers.")


def _load_data(
    reader: BlockReader, header: Header, hdu_class: HduClass, options: DecodeOptions
) -> ImageData | TableData | None:
    if not options.read_data:
        reader.skip(data_size(header))
        return None
    match hdu_class:
        case HduClass.SIMPLE | HduClass.IMAGE:
            if not header.naxis or header.naxis[0] == 0:
                return None
            return load_image(reader, header)
        case HduClass.TABLE:
            return load_text_table(reader, header)
        case HduClass.BINTABLE:
            return load_binary_table(reader, header)
    raise AssertionError(f"Unexpected HDU class {hdu_class!r}.")


def decode(source: IO[bytes] | bytes, *, options: DecodeOptions | None = None) -> DecodeResult:
    """Decode all header/data units in a FITS byte stream.

    Parameters
    ----------
    source
        Readable binary file-like object, or the complete contents of a FITS
        file.  File-like objects are read sequentially and never seeked or
        closed.
    options, optional
        Decoding options; defaults to `DecodeOptions.DEFAULT`.

    Returns
    -------
    result
        The decoded units and the error that stopped decoding, if any.

    Notes
    -----
    Decoding stops without error at the end of the stream, at a header that
    does not start a supported unit (a first header without ``SIMPLE``, or a
    later one without an ``IMAGE``, ``TABLE`` or ``BINTABLE`` ``XTENSION``),
    and after a random-groups primary (``NAXIS1 = 0``), which is returned
    without data.  A header or data section that cannot be decoded stops
    decoding with `DecodeResult.error` set; the failing unit is not included.
    Errors raised by ``source`` itself propagate.
    """
    if options is None:
        options = DecodeOptions.DEFAULT
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(source)
    reader = BlockReader(source)
    units: list[Unit] = []
    while not reader.is_exhausted():
        if options.max_units is not None and len(units) >= options.max_units:
            break
        index = len(units)
        try:
            header = read_header(reader)
            if header is None:
                break
            hdu_class = _classify(header, index)
            if hdu_class is None:
                _LOG.warning("Header %d does not start a supported HDU; stopping.", index)
                break
            if hdu_class is HduClass.SIMPLE:
                _verify_primary(header)
                if header.naxis and header.naxis[0] == 0:
                    _LOG.warning("Random-groups primary HDU is not supported; stopping.")
                    units.append(Unit(header, hdu_class))
                    break
            else:
                _verify_extension(header, hdu_class)
            unit = Unit(header, hdu_class, _load_data(reader, header, hdu_class, options))
        except FitsDecodeError as err:
            err.add_note(f"While decoding HDU {index}.")
            return DecodeResult(tuple(units), err)
        _LOG.debug("Decoded HDU %d (%s) with NAXIS=%s.", index, hdu_class, list(header.naxis))
        units.append(unit)
    return DecodeResult(tuple(units))
