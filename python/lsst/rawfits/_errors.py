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

__all__ = (
    "FitsDecodeError",
    "MalformedHeaderError",
    "UnsupportedFormError",
)


class FitsDecodeError(RuntimeError):
    """Base class for errors raised when the content of a FITS stream cannot
    be decoded.

    Errors from the underlying byte stream (e.g. `OSError`) are never wrapped
    in this type; they propagate unchanged.
    """


class MalformedHeaderError(FitsDecodeError):
    """The error type raised when a header is missing a mandatory keyword or
    holds a value that cannot be interpreted.
    """


class UnsupportedFormError(FitsDecodeError):
    """The error type raised for table storage forms this package does not
    decode (bit arrays, variable-length arrays, and unknown text-table
    codes).
    """
