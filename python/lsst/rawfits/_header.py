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

"""Parsing of FITS header cards.

A header is a sequence of 2880-byte blocks, each holding 36 fixed-width
80-character cards, terminated by a card with the keyword ``END``.  A card
carries a value only if columns 9-10 hold exactly ``"= "``; the value region
is everything after that, up to an (unquoted) ``/`` that starts a comment.
"""

from __future__ import annotations

__all__ = (
    "CARD_SIZE",
    "Header",
    "HeaderValue",
    "parse_card",
    "parse_string_literal",
    "parse_value",
    "read_header",
)

import enum
from collections.abc import Iterator, Mapping, Sequence
from logging import getLogger
from typing import final

from ._block_reader import BlockReader
from ._errors import MalformedHeaderError
from .utils import is_integer, keyword

_LOG = getLogger(__name__)

CARD_SIZE = 80
"""Number of characters in a header card."""

type HeaderValue = int | float | bool | str | complex | None


class _QuoteState(enum.Enum):
    OPEN = enum.auto()
    COLLECT = enum.auto()
    CANDIDATE_CLOSE = enum.auto()


def parse_string_literal(literal: str) -> str:
    """Decode a quoted header string.

    Parameters
    ----------
    literal
        Text starting with the opening quote.  Anything after the closing
        quote is ignored.

    Returns
    -------
    value
        The decoded string, with doubled quotes collapsed and trailing spaces
        removed.

    Raises
    ------
    MalformedHeaderError
        Raised if ``literal`` does not start with a quote or the string is
        never closed.
    """
    state = _QuoteState.OPEN
    chars: list[str] = []
    for char in literal:
        quote = char == "'"
        match state:
            case _QuoteState.OPEN:
                if not quote:
                    raise MalformedHeaderError(f"String value {literal!r} does not start with a quote.")
                state = _QuoteState.COLLECT
            case _QuoteState.COLLECT:
                if quote:
                    state = _QuoteState.CANDIDATE_CLOSE
                else:
                    chars.append(char)
            case _QuoteState.CANDIDATE_CLOSE:
                if not quote:
                    return "".join(chars).rstrip(" ")
                chars.append(char)
                state = _QuoteState.COLLECT
    if state is _QuoteState.CANDIDATE_CLOSE:
        return "".join(chars).rstrip(" ")
    raise MalformedHeaderError(f"String value {literal!r} ends prematurely.")


def _strip_comment(field: str) -> str:
    in_string = False
    for i, char in enumerate(field):
        if char == "'":
            in_string = not in_string
        elif char == "/" and not in_string:
            return field[:i]
    return field


def _parse_float(text: str) -> float:
    # Fortran writes double-precision exponents with 'D'.
    return float(text.replace("D", "E", 1))


def _parse_number(literal: str) -> int | float:
    if any(c in literal for c in ".DE"):
        return _parse_float(literal)
    return int(literal, 10)


def _parse_complex(literal: str) -> complex:
    if not literal.endswith(")"):
        raise ValueError(f"Complex value {literal!r} is not closed.")
    parts = literal[1:-1].split(",")
    if len(parts) != 2:
        raise ValueError(f"Complex value {literal!r} does not have two parts.")
    real, imag = (_parse_float(p.strip()) for p in parts)
    return complex(real, imag)


def parse_value(literal: str) -> HeaderValue:
    """Interpret the (comment-stripped, whitespace-trimmed) value region of a
    card.

    Raises
    ------
    MalformedHeaderError
        Raised for a bad quoted string.
    ValueError
        Raised if a numeric or complex literal cannot be parsed, or the
        literal has no recognized form.
    """
    if not literal:
        return None
    first = literal[0]
    if first == "'":
        return parse_string_literal(literal)
    if first in "0123456789+-":
        return _parse_number(literal)
    if literal == "T":
        return True
    if literal == "F":
        return False
    if first == "(":
        return _parse_complex(literal)
    raise ValueError(f"Unrecognized header value {literal!r}.")


def parse_card(card: str) -> tuple[str, HeaderValue]:
    """Split a single 80-character card into its keyword and value.

    Cards without a value indicator (comments, history, blank cards) yield a
    `None` value, as do cards whose value cannot be interpreted.
    """
    key = card[:8].strip()
    if card[8:10] != "= ":
        return key, None
    literal = _strip_comment(card[10:]).strip()
    try:
        return key, parse_value(literal)
    except ValueError as err:
        _LOG.warning("Ignoring value of header card %r: %s", key, err)
        return key, None


@final
class Header(Mapping[str, HeaderValue]):
    """The keyword/value mapping of a single HDU header.

    Parameters
    ----------
    values
        Mapping of keyword to decoded value.
    naxis, optional
        Axis extents, ``NAXIS1`` first.

    Notes
    -----
    Later duplicate cards overwrite earlier ones, so keyword order carries no
    meaning.
    """

    def __init__(self, values: Mapping[str, HeaderValue], naxis: Sequence[int] = ()):
        self._values = dict(values)
        self._naxis = tuple(naxis)

    @property
    def naxis(self) -> tuple[int, ...]:
        """Axis extents (``NAXIS1``, ``NAXIS2``, ...)."""
        return self._naxis

    def get_int(self, key: str) -> int | None:
        """Return the value of an integer keyword, or `None` if it is missing
        or not an integer.
        """
        value = self._values.get(key)
        return value if is_integer(value) else None

    def get_str(self, key: str) -> str | None:
        """Return the value of a string keyword, or `None` if it is missing
        or not a string.
        """
        value = self._values.get(key)
        return value if isinstance(value, str) else None

    def __getitem__(self, key: str) -> HeaderValue:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Header({self._values!r}, naxis={self._naxis!r})"


def _collect_naxis(values: Mapping[str, HeaderValue]) -> tuple[int, ...]:
    n = values.get("NAXIS")
    if not is_integer(n):
        return ()
    if n < 0:
        raise MalformedHeaderError(f"Invalid NAXIS value {n}.")
    naxis: list[int] = []
    for i in range(1, n + 1):
        key = keyword("NAXIS", i)
        extent = values.get(key)
        if not is_integer(extent) or extent < 0:
            raise MalformedHeaderError(f"No valid {key} in the header (NAXIS={n}).")
        naxis.append(extent)
    return tuple(naxis)


def read_header(reader: BlockReader) -> Header | None:
    """Read the next header from a block stream.

    Parameters
    ----------
    reader
        Block reader positioned at (or within the block before) the start of
        a header.  The rest of the current block is discarded first.

    Returns
    -------
    header
        The parsed header, or `None` if the stream ended before an ``END``
        card was found.

    Raises
    ------
    MalformedHeaderError
        Raised for bad quoted strings or missing ``NAXISn`` cards.
    """
    values: dict[str, HeaderValue] = {}
    while True:
        block = reader.next_block()
        if block is None:
            return None
        if len(block) < reader.block_size:
            _LOG.warning("Header block truncated to %d bytes; treating as end of stream.", len(block))
            return None
        text = block.decode("ascii", errors="replace")
        for start in range(0, len(text) - CARD_SIZE + 1, CARD_SIZE):
            card = text[start : start + CARD_SIZE]
            if card[:8].strip() == "END":
                return Header(values, naxis=_collect_naxis(values))
            key, value = parse_card(card)
            values[key] = value
