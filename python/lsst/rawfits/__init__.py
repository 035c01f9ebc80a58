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

"""A pure-Python, read-only decoder for the FITS format.

`decode` reads a byte stream of 2880-byte blocks and returns a `DecodeResult`
holding one `Unit` per header/data unit.  Images are exposed as typed pixel
buffers (`ImageData`) and text and binary tables as row-major byte blobs with
per-column accessors (`TableData`).  Stored values are never rescaled, and
random groups, variable-length arrays, and world coordinate systems are not
supported.
"""

from ._block_reader import *
from ._decoder import *
from ._dtypes import *
from ._errors import *
from ._format import *
from ._header import *
from ._image import *
from ._table import *
from ._unit import *
