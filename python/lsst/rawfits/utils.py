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

__all__ = ("is_integer", "keyword")

from typing import Any, TypeGuard


def keyword(prefix: str, n: int) -> str:
    """Return the name of an indexed header keyword, e.g. ``NAXIS2``."""
    return f"{prefix}{n}"


def is_integer(x: Any) -> TypeGuard[int]:
    """Test whether a header value is an integer.

    Booleans are rejected even though `bool` subclasses `int`.
    """
    return isinstance(x, int) and not isinstance(x, bool)
