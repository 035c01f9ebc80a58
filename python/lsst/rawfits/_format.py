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

"""Rendering of table values according to Fortran-style ``TDISPn``
directives.

A directive has the form ``<code><width>[.<decimals>]``, e.g. ``F10.4`` or
``I6``.  The engineering and scientific variants ``ENw.d`` and ``ESw.d`` are
treated as ``Ew.d``.
"""

from __future__ import annotations

__all__ = ("DEFAULT_WIDTH", "DisplayFormat", "format_value")

import dataclasses
import functools
import re
from typing import Any

import numpy as np

DEFAULT_WIDTH = 14
"""Field width used when a directive does not give one."""

_DIRECTIVE_RE = re.compile(r"([A-Z])(\d+)?(?:\.(\d+))?")

_CODES = frozenset("AILBOZFDEG")


@dataclasses.dataclass(frozen=True)
class DisplayFormat:
    """A parsed display directive."""

    code: str
    """Single-letter format code (``A``, ``I``, ``L``, ``B``, ``O``, ``Z``,
    ``F``, ``D``, ``E``, or ``G``).
    """

    width: int = DEFAULT_WIDTH
    """Minimum field width; values are right-justified within it."""

    decimals: int | None = None
    """Number of digits after the decimal point, if given."""

    @classmethod
    def parse(cls, directive: str) -> DisplayFormat | None:
        """Parse a ``TDISPn``-style directive.

        Parameters
        ----------
        directive
            Directive string, e.g. ``"F10.4"`` or ``"ES12.5"``.

        Returns
        -------
        display_format
            The parsed directive, or `None` if it is not recognized.
        """
        directive = directive.strip()
        if len(directive) > 1 and directive[1] in "NS":
            directive = directive[0] + directive[2:]
        match = _DIRECTIVE_RE.fullmatch(directive)
        if match is None or match.group(1) not in _CODES:
            return None
        code, width, decimals = match.groups()
        return cls(
            code=code,
            width=int(width) if width is not None else DEFAULT_WIDTH,
            decimals=int(decimals) if decimals is not None else None,
        )

    def render(self, value: Any) -> str:
        """Render a decoded table value.

        Sequences are rendered element by element inside brackets and complex
        numbers as ``(real,imag)``.  Values that cannot be converted to the
        directive's kind fall back to `str`; `None` renders as an empty
        string.
        """
        if value is None:
            return ""
        if isinstance(value, np.ndarray):
            return "[" + " ".join(self.render(item) for item in value) + "]"
        if isinstance(value, (complex, np.complexfloating)):
            return f"({self.render(value.real)},{self.render(value.imag)})"
        try:
            return self._render_scalar(value)
        except (TypeError, ValueError, OverflowError):
            return str(value)

    def _render_scalar(self, value: Any) -> str:
        w = self.width
        match self.code:
            case "A":
                return f"{str(value)[:w]:>{w}}"
            case "L":
                return f"{'T' if value else 'F':>{w}}"
            case "I":
                return f"{int(value):{w}d}"
            case "B":
                return f"{int(value):{w}b}"
            case "O":
                return f"{int(value):{w}o}"
            case "Z":
                return f"{int(value):{w}X}"
            case "F" | "D":
                kind = "f"
            case "E":
                kind = "e"
            case "G":
                kind = "g"
            case other:
                raise AssertionError(f"Unexpected display code {other!r}.")
        if self.decimals is not None:
            return f"{float(value):{w}.{self.decimals}{kind}}"
        return f"{float(value):{w}{kind}}"


@functools.lru_cache(maxsize=256)
def _parse_cached(directive: str) -> DisplayFormat | None:
    return DisplayFormat.parse(directive)


def format_value(value: Any, directive: str | None) -> str:
    """Render a value with a ``TDISPn``-style directive.

    Parameters
    ----------
    value
        Decoded table value; `None` renders as an empty string.
    directive
        Display directive.  If `None` or unrecognized, the value is rendered
        with `str`.

    Returns
    -------
    text
        The formatted value.
    """
    if value is None:
        return ""
    display_format = _parse_cached(directive) if directive is not None else None
    if display_format is None:
        return str(value)
    return display_format.render(value)
