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

__all__ = ("BLOCK_SIZE", "BlockReader")

from typing import IO

import numpy as np
import numpy.typing as npt

BLOCK_SIZE = 2880
"""Size in bytes of a FITS physical block."""


class BlockReader:
    """A sequential byte reader over a stream of fixed-size FITS blocks.

    Parameters
    ----------
    stream
        Readable binary file-like object.  Only its ``read`` method is used,
        and it is never seeked or closed by this class.
    block_size, optional
        Size of the physical blocks to page in.

    Notes
    -----
    Reads that run past the end of the current block transparently page in
    the next one.  Running out of input is not an error: the bytes gathered
    so far are returned and `is_exhausted` becomes `True`.  Any exception
    raised by the stream itself propagates.
    """

    def __init__(self, stream: IO[bytes], block_size: int = BLOCK_SIZE):
        self._stream = stream
        self._block_size = block_size
        self._block = b""
        self._pos = 0
        self._exhausted = False

    @property
    def block_size(self) -> int:
        """Size in bytes of the physical blocks."""
        return self._block_size

    def is_exhausted(self) -> bool:
        """Report whether the underlying stream has been fully consumed."""
        return self._exhausted

    def read(self, n: int) -> bytes:
        """Read the next ``n`` bytes.

        Parameters
        ----------
        n
            Number of bytes to read.

        Returns
        -------
        data
            The requested bytes, or fewer if the stream ran out first.
        """
        parts: list[bytes] = []
        while n > 0:
            available = len(self._block) - self._pos
            if available == 0:
                if not self._page_in():
                    break
                continue
            take = min(n, available)
            parts.append(self._block[self._pos : self._pos + take])
            self._pos += take
            n -= take
        return b"".join(parts)

    def skip(self, n: int) -> int:
        """Discard the next ``n`` bytes, returning the number skipped."""
        skipped = 0
        while skipped < n:
            available = len(self._block) - self._pos
            if available == 0:
                if not self._page_in():
                    break
                continue
            take = min(n - skipped, available)
            self._pos += take
            skipped += take
        return skipped

    def next_block(self) -> bytes | None:
        """Discard the rest of the current block and return a fresh one.

        The returned block is considered fully consumed, so the next `read`
        starts at the beginning of the following block.

        Returns
        -------
        block
            The new block (which may be shorter than `block_size` at the end
            of the stream), or `None` if the stream is exhausted.
        """
        if not self._page_in():
            return None
        block = self._block
        self._pos = len(block)
        return block

    def read_array(self, dtype: npt.DTypeLike, count: int) -> np.ndarray:
        """Read ``count`` elements of a big-endian type as a native-order
        array.

        Fewer elements are returned if the stream runs out; a trailing partial
        element is dropped.
        """
        dtype = np.dtype(dtype)
        data = self.read(dtype.itemsize * count)
        n = len(data) // dtype.itemsize
        return np.frombuffer(data, dtype=dtype, count=n).astype(dtype.newbyteorder("="))

    def read_u8(self) -> int:
        """Read an unsigned 8-bit integer."""
        return int(self._read_scalar(">u1"))

    def read_i16(self) -> int:
        """Read a big-endian signed 16-bit integer."""
        return int(self._read_scalar(">i2"))

    def read_i32(self) -> int:
        """Read a big-endian signed 32-bit integer."""
        return int(self._read_scalar(">i4"))

    def read_i64(self) -> int:
        """Read a big-endian signed 64-bit integer."""
        return int(self._read_scalar(">i8"))

    def read_f32(self) -> float:
        """Read a big-endian IEEE single-precision float."""
        return float(self._read_scalar(">f4"))

    def read_f64(self) -> float:
        """Read a big-endian IEEE double-precision float."""
        return float(self._read_scalar(">f8"))

    def _read_scalar(self, dtype: str) -> np.generic:
        # Values may straddle a block boundary, so always go through read().
        itemsize = np.dtype(dtype).itemsize
        data = self.read(itemsize)
        if len(data) < itemsize:
            data = data.ljust(itemsize, b"\0")
        return np.frombuffer(data, dtype=dtype)[0]

    def _page_in(self) -> bool:
        """Replace the current block with the next one from the stream.

        Returns
        -------
        paged
            `False` if there was nothing left to read.
        """
        parts: list[bytes] = []
        remaining = self._block_size
        while remaining > 0:
            chunk = self._stream.read(remaining)
            if not chunk:
                break
            parts.append(chunk)
            remaining -= len(chunk)
        self._block = b"".join(parts)
        self._pos = 0
        if not self._block:
            self._exhausted = True
            return False
        return True
