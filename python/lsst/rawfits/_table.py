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

"""Decoding of text (``XTENSION='TABLE'``) and binary
(``XTENSION='BINTABLE'``) table data sections.

The whole table is read into memory as a row-major byte blob.  Each declared
column becomes a `FieldDescriptor` (its fixed position and size within a row)
and a stateless `Field` accessor that decodes one cell given a row index.
"""

from __future__ import annotations

__all__ = (
    "Field",
    "FieldAccessor",
    "FieldDescriptor",
    "FieldValue",
    "TableData",
    "absent_field",
    "load_binary_table",
    "load_text_table",
    "parse_binary_form",
    "parse_text_form",
)

import re
from collections.abc import Callable, Sequence
from logging import getLogger
from typing import NamedTuple, final

import numpy as np
import pydantic

from ._block_reader import BlockReader
from ._errors import MalformedHeaderError, UnsupportedFormError
from ._format import format_value
from ._header import Header
from .utils import keyword

_LOG = getLogger(__name__)

type FieldValue = str | bool | int | float | np.generic | np.ndarray

type FieldAccessor = Callable[[int], FieldValue | None]

type _Decoder = Callable[[bytes, int], FieldValue | None]


class _BinaryElement(NamedTuple):
    dtype: str
    display: str


# Element type and default display directive per binary type code; the
# display for "A" depends on the repeat count.
_BINARY_ELEMENTS: dict[str, _BinaryElement] = {
    "A": _BinaryElement("u1", ""),
    "L": _BinaryElement("u1", "L1"),
    "B": _BinaryElement("u1", "I3"),
    "I": _BinaryElement(">i2", "I6"),
    "J": _BinaryElement(">i4", "I11"),
    "K": _BinaryElement(">i8", "I20"),
    "E": _BinaryElement(">f4", "F14.7"),
    "D": _BinaryElement(">f8", "F14.7"),
    "C": _BinaryElement(">c8", "F14.7"),
    "M": _BinaryElement(">c16", "F14.7"),
}

_UNSUPPORTED_BINARY_CODES = frozenset("XPQ")

_TEXT_CODES = frozenset("AIDEF")

_BINARY_FORM_RE = re.compile(r"\s*(\d*)([A-Z])(.*)")

_TEXT_FORM_RE = re.compile(r"\s*([A-Z])(\d+)(?:\.(\d+))?\s*")

_TRUE = ord("T")


class FieldDescriptor(pydantic.BaseModel):
    """The fixed layout of one table column."""

    model_config = pydantic.ConfigDict(frozen=True)

    index: int
    """Zero-based column index (``TFORM{index + 1}``)."""

    name: str
    """Public column name: ``TTYPEn`` if present, else ``COLn``."""

    form: str
    """The ``TFORMn`` storage-form string."""

    code: str
    """Single-letter storage type code."""

    repeat: int = 1
    """Number of elements per cell (binary tables only)."""

    width: int
    """Number of bytes the column occupies in each row."""

    decimals: int | None = None
    """Digits after the decimal point declared by a text-table form."""

    offset: int
    """Byte offset of the column from the start of a row."""

    display: str
    """``TDISPn`` directive, or a default for the storage form."""

    binary: bool
    """Whether the column belongs to a binary table."""

    @property
    def has_data(self) -> bool:
        """Whether the column occupies any bytes.

        Binary columns with a repeat count of zero have a descriptor but no
        accessor.
        """
        return self.width > 0


def parse_binary_form(form: str) -> tuple[int, str]:
    """Split a binary-table ``TFORMn`` value into repeat count and type code.

    Characters after the type code are ignored.

    Raises
    ------
    MalformedHeaderError
        Raised if the form has no recognized type code.
    UnsupportedFormError
        Raised for bit (``X``) and variable-length array (``P``, ``Q``) forms
        with a nonzero repeat count.
    """
    match = _BINARY_FORM_RE.fullmatch(form)
    if match is None:
        raise MalformedHeaderError(f"TFORM {form!r} has an invalid binary format.")
    digits, code, _ = match.groups()
    repeat = int(digits) if digits else 1
    if code not in _BINARY_ELEMENTS and code not in _UNSUPPORTED_BINARY_CODES:
        raise MalformedHeaderError(f"TFORM {form!r} has an invalid binary format.")
    if repeat > 0 and code in _UNSUPPORTED_BINARY_CODES:
        raise UnsupportedFormError(f"Binary table form {form!r} (X, P and Q codes) is not supported.")
    return repeat, code


def parse_text_form(form: str) -> tuple[str, int, int | None]:
    """Split a text-table ``TFORMn`` value into code, width, and decimals.

    Raises
    ------
    MalformedHeaderError
        Raised if the form does not look like ``<code><width>[.<decimals>]``.
    UnsupportedFormError
        Raised for codes other than ``A``, ``I``, ``D``, ``E``, and ``F``.
    """
    match = _TEXT_FORM_RE.fullmatch(form)
    if match is None:
        raise MalformedHeaderError(f"TFORM {form!r} has an invalid text-table format.")
    code, width, decimals = match.groups()
    if code not in _TEXT_CODES:
        raise UnsupportedFormError(f"Unsupported TFORM {form!r} in a text table.")
    return code, int(width), int(decimals) if decimals is not None else None


def _decode_text(blob: bytes, start: int, size: int) -> str:
    return blob[start : start + size].decode("ascii", errors="replace")


def _binary_decoder(code: str, repeat: int) -> _Decoder:
    if code == "A":

        def decode_string(blob: bytes, start: int) -> str:
            return _decode_text(blob, start, repeat)

        return decode_string
    if code == "L":
        if repeat == 1:

            def decode_bool(blob: bytes, start: int) -> bool:
                return blob[start] == _TRUE

            return decode_bool

        def decode_bool_array(blob: bytes, start: int) -> np.ndarray:
            return np.frombuffer(blob, dtype=np.uint8, count=repeat, offset=start) == _TRUE

        return decode_bool_array
    dtype = np.dtype(_BINARY_ELEMENTS[code].dtype)
    if repeat == 1:

        def decode_scalar(blob: bytes, start: int) -> np.generic:
            return np.frombuffer(blob, dtype=dtype, count=1, offset=start)[0]

        return decode_scalar
    native = dtype.newbyteorder("=")

    def decode_array(blob: bytes, start: int) -> np.ndarray:
        return np.frombuffer(blob, dtype=dtype, count=repeat, offset=start).astype(native)

    return decode_array


def _text_decoder(code: str, width: int) -> _Decoder:
    match code:
        case "A":

            def decode_string(blob: bytes, start: int) -> str:
                return _decode_text(blob, start, width)

            return decode_string
        case "I":

            def decode_int(blob: bytes, start: int) -> int | None:
                try:
                    return int(_decode_text(blob, start, width).strip(), 10)
                except ValueError:
                    return None

            return decode_int
        case "D" | "E" | "F":

            def decode_float(blob: bytes, start: int) -> float | None:
                text = _decode_text(blob, start, width).strip().replace("D", "E", 1)
                try:
                    return float(text)
                except ValueError:
                    return None

            return decode_float
    raise AssertionError(f"Unexpected text-table code {code!r}.")


def absent_field(row: int) -> None:
    """Accessor for a column that does not exist or holds no data; always
    returns `None`.
    """
    return None


@final
class Field:
    """Accessor for the cells of one table column.

    Parameters
    ----------
    descriptor
        Layout of the column.
    blob
        Raw row-major table bytes.
    row_length
        Number of bytes per row (``NAXIS1``).
    n_rows
        Number of rows (``NAXIS2``).

    Notes
    -----
    Instances hold no mutable state: the byte offset of a cell is computed
    from the row index on every call, so a `Field` may be called from any
    number of threads at once.
    """

    __slots__ = ("_descriptor", "_blob", "_row_length", "_n_rows", "_decode")

    def __init__(self, descriptor: FieldDescriptor, blob: bytes, row_length: int, n_rows: int):
        self._descriptor = descriptor
        self._blob = blob
        self._row_length = row_length
        self._n_rows = n_rows
        if descriptor.binary:
            self._decode = _binary_decoder(descriptor.code, descriptor.repeat)
        else:
            self._decode = _text_decoder(descriptor.code, descriptor.width)

    @property
    def descriptor(self) -> FieldDescriptor:
        """Layout of the column."""
        return self._descriptor

    def __call__(self, row: int) -> FieldValue | None:
        """Return the value of the cell in the given (zero-based) row, or
        `None` if the row does not exist.
        """
        if not 0 <= row < self._n_rows:
            return None
        start = row * self._row_length + self._descriptor.offset
        if start + self._descriptor.width > len(self._blob):
            return None
        return self._decode(self._blob, start)

    def __repr__(self) -> str:
        return f"Field({self._descriptor.name!r}, form={self._descriptor.form!r})"


@final
class TableData:
    """The decoded data section of a text or binary table HDU.

    Parameters
    ----------
    blob
        Raw row-major table bytes.
    row_length
        Number of bytes per row (``NAXIS1``).
    n_rows
        Number of rows (``NAXIS2``).
    descriptors
        Layout of every declared column, in ``TFORMn`` order.
    """

    def __init__(self, blob: bytes, row_length: int, n_rows: int, descriptors: Sequence[FieldDescriptor]):
        self._blob = blob
        self._row_length = row_length
        self._n_rows = n_rows
        self._descriptors = tuple(descriptors)
        self._fields: list[Field | None] = [
            Field(d, blob, row_length, n_rows) if d.has_data else None for d in self._descriptors
        ]
        self._names = {d.name: d.index for d in self._descriptors if d.has_data}

    @property
    def blob(self) -> bytes:
        """Raw row-major table bytes."""
        return self._blob

    @property
    def row_length(self) -> int:
        """Number of bytes per row."""
        return self._row_length

    @property
    def n_rows(self) -> int:
        """Number of rows."""
        return self._n_rows

    @property
    def descriptors(self) -> tuple[FieldDescriptor, ...]:
        """Layout of every declared column, including those with no data."""
        return self._descriptors

    @property
    def names(self) -> list[str]:
        """Names of the columns that can be looked up by name."""
        return [d.name for d in self._descriptors if d.has_data]

    def index(self, col: int | str) -> int | None:
        """Resolve a zero-based index or column name to an index.

        Returns `None` if there is no such column.
        """
        if isinstance(col, str):
            return self._names.get(col)
        if 0 <= col < len(self._descriptors):
            return col
        return None

    def descriptor(self, col: int | str) -> FieldDescriptor | None:
        """Return the layout of a column, or `None` if there is no such
        column.
        """
        if (index := self.index(col)) is None:
            return None
        return self._descriptors[index]

    def field(self, col: int | str) -> FieldAccessor:
        """Return the accessor for a column.

        Unknown columns (and columns with no data) yield an accessor that
        always returns `None`.
        """
        if (index := self.index(col)) is None:
            return absent_field
        return self._fields[index] or absent_field

    def column(self, col: int | str) -> list[FieldValue | None]:
        """Return the values of every row of a column."""
        fn = self.field(col)
        return [fn(row) for row in range(self._n_rows)]

    def format(self, col: int | str, row: int) -> str:
        """Render a cell with the column's display directive.

        Returns an empty string for unknown columns and rows.
        """
        if (descriptor := self.descriptor(col)) is None:
            return ""
        return format_value(self.field(descriptor.index)(row), descriptor.display)

    def __len__(self) -> int:
        return self._n_rows

    def __repr__(self) -> str:
        return f"TableData(..., n_rows={self._n_rows}, names={self.names!r})"


def _require_int(header: Header, key: str) -> int:
    value = header.get_int(key)
    if value is None or value < 0:
        raise MalformedHeaderError(f"No valid {key} in the table header.")
    return value


def _read_blob(reader: BlockReader, header: Header) -> tuple[bytes, int, int]:
    row_length, n_rows = header.naxis
    size = row_length * n_rows
    blob = reader.read(size)
    if len(blob) < size:
        _LOG.warning("Table data truncated: expected %d bytes, got %d.", size, len(blob))
    # The heap (if any) follows the main table; nothing here reads it.
    reader.skip(header.get_int("PCOUNT") or 0)
    return blob, row_length, n_rows


def _column_name(header: Header, n: int) -> str:
    return header.get_str(keyword("TTYPE", n)) or keyword("COL", n)


def _form(header: Header, n: int) -> str:
    form = header.get_str(keyword("TFORM", n))
    if form is None:
        raise MalformedHeaderError(f"No {keyword('TFORM', n)} in the table header.")
    return form


def load_binary_table(reader: BlockReader, header: Header) -> TableData:
    """Read the data section of a binary table HDU and lay out its columns.

    Parameters
    ----------
    reader
        Block reader positioned at the start of the data section.
    header
        Validated ``BINTABLE`` header (``NAXIS=2``).

    Returns
    -------
    table
        The decoded table.
    """
    tfields = _require_int(header, "TFIELDS")
    row_length = header.naxis[0]
    descriptors: list[FieldDescriptor] = []
    cursor = 0
    for i in range(tfields):
        n = i + 1
        form = _form(header, n)
        repeat, code = parse_binary_form(form)
        # X, P and Q only get here with a zero repeat count.
        element = _BINARY_ELEMENTS.get(code)
        if element is None:
            width, default_display = 0, ""
        else:
            width = repeat * np.dtype(element.dtype).itemsize
            default_display = f"A{repeat}" if code == "A" else element.display
        if cursor + width > row_length:
            raise MalformedHeaderError(
                f"Column {n} ({form!r}) at byte {cursor} does not fit in a {row_length}-byte row."
            )
        descriptors.append(
            FieldDescriptor(
                index=i,
                name=_column_name(header, n),
                form=form,
                code=code,
                repeat=repeat,
                width=width,
                offset=cursor,
                display=header.get_str(keyword("TDISP", n)) or default_display,
                binary=True,
            )
        )
        cursor += width
    blob, row_length, n_rows = _read_blob(reader, header)
    return TableData(blob, row_length, n_rows, descriptors)


def load_text_table(reader: BlockReader, header: Header) -> TableData:
    """Read the data section of a text table HDU and lay out its columns.

    Parameters
    ----------
    reader
        Block reader positioned at the start of the data section.
    header
        Validated ``TABLE`` header (``NAXIS=2``).

    Returns
    -------
    table
        The decoded table.
    """
    tfields = _require_int(header, "TFIELDS")
    row_length = header.naxis[0]
    descriptors: list[FieldDescriptor] = []
    for i in range(tfields):
        n = i + 1
        form = _form(header, n)
        code, width, decimals = parse_text_form(form)
        tbcol = header.get_int(keyword("TBCOL", n))
        if tbcol is None or tbcol < 1:
            raise MalformedHeaderError(f"No valid {keyword('TBCOL', n)} in the table header.")
        offset = tbcol - 1
        if offset + width > row_length:
            raise MalformedHeaderError(
                f"Column {n} ({form!r}) at byte {offset} does not fit in a {row_length}-byte row."
            )
        default_display = "F14.7" if code in "DEF" else f"{code}{width}"
        descriptors.append(
            FieldDescriptor(
                index=i,
                name=_column_name(header, n),
                form=form,
                code=code,
                width=width,
                decimals=decimals,
                offset=offset,
                display=header.get_str(keyword("TDISP", n)) or default_display,
                binary=False,
            )
        )
    blob, row_length, n_rows = _read_blob(reader, header)
    return TableData(blob, row_length, n_rows, descriptors)
