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

import io
import unittest

import numpy as np

from lsst.rawfits import (
    BLOCK_SIZE,
    BlockReader,
    DecodeOptions,
    HduClass,
    MalformedHeaderError,
    UnsupportedFormError,
    data_size,
    decode,
    read_header,
)
from lsst.rawfits.tests import make_hdu, make_header

_EMPTY_PRIMARY = [("SIMPLE", True), ("BITPIX", 8), ("NAXIS", 0)]


def _primary(values: np.ndarray, bitpix: int) -> bytes:
    cards = [("SIMPLE", True), ("BITPIX", bitpix), ("NAXIS", values.ndim)]
    cards += [(f"NAXIS{n}", extent) for n, extent in enumerate(reversed(values.shape), start=1)]
    return make_hdu(cards, values)


def _image_extension(values: np.ndarray, bitpix: int, **extra: object) -> bytes:
    cards = [("XTENSION", "IMAGE"), ("BITPIX", bitpix), ("NAXIS", values.ndim)]
    cards += [(f"NAXIS{n}", extent) for n, extent in enumerate(reversed(values.shape), start=1)]
    cards += [("PCOUNT", 0), ("GCOUNT", 1)]
    cards += list(extra.items())
    return make_hdu(cards, values)


def _bintable(pcount: int = 0, tform: str = "1J") -> bytes:
    rows = np.array([3, -4, 5], dtype=">i4")
    cards = [
        ("XTENSION", "BINTABLE"),
        ("BITPIX", 8),
        ("NAXIS", 2),
        ("NAXIS1", 4),
        ("NAXIS2", 3),
        ("PCOUNT", pcount),
        ("GCOUNT", 1),
        ("TFIELDS", 1),
        ("TFORM1", tform),
        ("TTYPE1", "ID"),
    ]
    return make_hdu(cards, rows.tobytes() + b"\x01" * pcount)


def _text_table() -> bytes:
    cards = [
        ("XTENSION", "TABLE"),
        ("BITPIX", 8),
        ("NAXIS", 2),
        ("NAXIS1", 10),
        ("NAXIS2", 2),
        ("PCOUNT", 0),
        ("GCOUNT", 1),
        ("TFIELDS", 1),
        ("TFORM1", "F10.3"),
        ("TBCOL1", 1),
        ("TTYPE1", "FLUX"),
    ]
    return make_hdu(cards, b"     1.250    -2.0E1")


class _ChunkStream:
    """A stream that serves fixed chunks and then raises."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    def read(self, n: int = -1) -> bytes:
        data = self._buffer.read(n)
        if not data:
            raise OSError("Connection reset.")
        return data


class DecodeTestCase(unittest.TestCase):
    """Tests for decoding whole FITS streams."""

    def test_minimal(self) -> None:
        result = decode(io.BytesIO(make_hdu(_EMPTY_PRIMARY)))
        self.assertIsNone(result.error)
        result.raise_for_error()
        self.assertEqual(len(result), 1)
        unit = result[0]
        self.assertEqual(unit.hdu_class, HduClass.SIMPLE)
        self.assertEqual(unit.naxis, ())
        self.assertEqual(unit.bitpix, 8)
        self.assertIsNone(unit.data)
        self.assertFalse(unit.has_image)
        self.assertFalse(unit.has_table)
        self.assertEqual(unit.stats(), (0.0, 0.0))

    def test_bytes_source(self) -> None:
        result = decode(make_hdu(_EMPTY_PRIMARY))
        self.assertEqual(len(result), 1)

    def test_empty_stream(self) -> None:
        result = decode(b"")
        self.assertEqual(len(result), 0)
        self.assertIsNone(result.error)

    def test_all_unit_kinds(self) -> None:
        primary = np.arange(1, 7, dtype=np.int16).reshape(2, 3)
        extension = np.array([[1.5, np.nan], [-2.0, 4.0]], dtype=np.float64)
        data = (
            _primary(primary, 16)
            + _image_extension(extension, -64, EXTNAME="SCI")
            + _bintable()
            + _text_table()
        )
        result = decode(data)
        self.assertIsNone(result.error)
        self.assertEqual(
            [unit.hdu_class for unit in result],
            [HduClass.SIMPLE, HduClass.IMAGE, HduClass.BINTABLE, HduClass.TABLE],
        )
        first, second, third, fourth = result
        self.assertTrue(first.has_image)
        self.assertEqual(first.naxis, (3, 2))
        self.assertEqual(first.at(0, 0), 1)
        self.assertEqual(first.at(2, 0), 3)
        self.assertEqual(first.at(0, 1), 4)
        self.assertEqual(first.at(2, 1), 6)
        self.assertEqual(first.stats(), (1.0, 6.0))
        np.testing.assert_array_equal(first.image.array, primary)
        self.assertEqual(second.header["EXTNAME"], "SCI")
        self.assertTrue(second.is_blank(1, 0))
        self.assertEqual(second.float_at(0, 1), -2.0)
        self.assertEqual(second.stats(), (-2.0, 4.0))
        self.assertTrue(third.has_table)
        self.assertEqual([third.field("ID")(row) for row in range(3)], [3, -4, 5])
        self.assertEqual(third.format("ID", 1), "         -4")
        self.assertIsInstance(third.data, bytes)
        self.assertEqual(fourth.field("FLUX")(0), 1.25)
        self.assertEqual(fourth.field("FLUX")(1), -20.0)
        self.assertEqual(fourth.format(0, 0), "     1.2500000")

    def test_multi_block_data(self) -> None:
        primary = np.arange(1600, dtype=np.int16).reshape(40, 40)
        data = _primary(primary, 16) + _image_extension(np.ones((2, 2), dtype=np.int32), 32)
        result = decode(data)
        self.assertEqual(len(result), 2)
        self.assertEqual(result[0].int_at(39, 39), 1599)
        self.assertEqual(result[1].int_at(1, 1), 1)

    def test_unsupported_header_stops(self) -> None:
        data = make_hdu(_EMPTY_PRIMARY) + make_hdu([("BITPIX", 8), ("NAXIS", 0)])
        with self.assertLogs("lsst.rawfits._decoder", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 1)
        self.assertIsNone(result.error)
        data = make_hdu(_EMPTY_PRIMARY) + make_hdu(
            [("XTENSION", "FOREIGN"), ("BITPIX", 8), ("NAXIS", 0), ("PCOUNT", 0), ("GCOUNT", 1)]
        )
        with self.assertLogs("lsst.rawfits._decoder", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 1)

    def test_no_simple(self) -> None:
        data = make_hdu([("XTENSION", "IMAGE"), ("BITPIX", 8), ("NAXIS", 0), ("PCOUNT", 0), ("GCOUNT", 1)])
        with self.assertLogs("lsst.rawfits._decoder", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 0)
        self.assertIsNone(result.error)

    def test_validation_error(self) -> None:
        data = make_hdu(_EMPTY_PRIMARY) + make_hdu([("XTENSION", "IMAGE"), ("BITPIX", 8), ("NAXIS", 0)])
        result = decode(data)
        self.assertEqual(len(result), 1)
        self.assertIsInstance(result.error, MalformedHeaderError)
        self.assertIn("While decoding HDU 1.", result.error.__notes__)
        with self.assertRaises(MalformedHeaderError):
            result.raise_for_error()

    def test_invalid_headers(self) -> None:
        cases = {
            "bad BITPIX": [("SIMPLE", True), ("BITPIX", 12), ("NAXIS", 0)],
            "no BITPIX": [("SIMPLE", True), ("NAXIS", 0)],
            "no NAXIS": [("SIMPLE", True), ("BITPIX", 8)],
            "missing NAXISn": [("SIMPLE", True), ("BITPIX", 8), ("NAXIS", 1)],
        }
        for name, cards in cases.items():
            with self.subTest(name=name):
                result = decode(make_hdu(cards))
                self.assertEqual(len(result), 0)
                self.assertIsInstance(result.error, MalformedHeaderError)

    def test_invalid_extensions(self) -> None:
        base = [("BITPIX", 8), ("NAXIS", 2), ("NAXIS1", 4), ("NAXIS2", 1), ("GCOUNT", 1)]
        cases = {
            "IMAGE with PCOUNT": [("XTENSION", "IMAGE"), ("PCOUNT", 4)] + base,
            "TABLE with BITPIX 16": [("XTENSION", "TABLE"), ("PCOUNT", 0)] + base + [("BITPIX", 16)],
            "BINTABLE with NAXIS 1": [
                ("XTENSION", "BINTABLE"),
                ("BITPIX", 8),
                ("NAXIS", 1),
                ("NAXIS1", 4),
                ("PCOUNT", 0),
                ("GCOUNT", 1),
            ],
            "no GCOUNT": [("XTENSION", "IMAGE"), ("BITPIX", 8), ("NAXIS", 0), ("PCOUNT", 0)],
        }
        for name, cards in cases.items():
            with self.subTest(name=name):
                result = decode(make_hdu(_EMPTY_PRIMARY) + make_hdu(cards))
                self.assertEqual(len(result), 1)
                self.assertIsInstance(result.error, MalformedHeaderError)

    def test_unsupported_form(self) -> None:
        result = decode(make_hdu(_EMPTY_PRIMARY) + _bintable(tform="1PJ(3)"))
        self.assertEqual(len(result), 1)
        self.assertIsInstance(result.error, UnsupportedFormError)

    def test_random_groups(self) -> None:
        cards = [
            ("SIMPLE", True),
            ("BITPIX", 8),
            ("NAXIS", 2),
            ("NAXIS1", 0),
            ("NAXIS2", 5),
            ("GROUPS", True),
            ("PCOUNT", 0),
            ("GCOUNT", 1),
        ]
        data = make_hdu(cards, b"\0" * 5) + make_hdu(_EMPTY_PRIMARY)
        with self.assertLogs("lsst.rawfits._decoder", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 1)
        self.assertIsNone(result.error)
        self.assertEqual(result[0].naxis, (0, 5))
        self.assertIsNone(result[0].image)
        self.assertFalse(result[0].has_image)

    def test_heap_skipped(self) -> None:
        data = (
            make_hdu(_EMPTY_PRIMARY)
            + _bintable(pcount=3000)
            + _image_extension(np.array([9], dtype=np.int16), 16)
        )
        result = decode(data)
        self.assertIsNone(result.error)
        self.assertEqual(len(result), 3)
        self.assertEqual(result[2].int_at(0), 9)

    def test_skip_data(self) -> None:
        primary = np.arange(1600, dtype=np.int16).reshape(40, 40)
        data = _primary(primary, 16) + _bintable(pcount=3000) + _image_extension(np.ones(3, np.uint8), 8)
        result = decode(data, options=DecodeOptions(read_data=False))
        self.assertIsNone(result.error)
        self.assertEqual(len(result), 3)
        for unit in result:
            self.assertIsNone(unit.data)
        self.assertEqual(result[2].naxis, (3,))
        self.assertIsNone(result[1].field("ID")(0))
        self.assertEqual(result[1].format("ID", 0), "")

    def test_max_units(self) -> None:
        data = make_hdu(_EMPTY_PRIMARY) + _bintable() + _text_table()
        self.assertEqual(len(decode(data, options=DecodeOptions(max_units=2))), 2)
        self.assertEqual(len(decode(data, options=DecodeOptions(max_units=0))), 0)
        self.assertEqual(len(decode(data, options=DecodeOptions.DEFAULT)), 3)

    def test_truncated_stream(self) -> None:
        data = make_hdu(_EMPTY_PRIMARY) + make_header([("XTENSION", "IMAGE")])[:100]
        with self.assertLogs("lsst.rawfits._header", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 1)
        self.assertIsNone(result.error)

    def test_truncated_image(self) -> None:
        data = _primary(np.arange(4000, dtype=np.int32), 32)[: BLOCK_SIZE * 2]
        with self.assertLogs("lsst.rawfits._image", level="WARNING"):
            result = decode(data)
        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].int_at(10), 10)
        self.assertEqual(result[0].int_at(3999), 0)

    def test_stream_errors_propagate(self) -> None:
        with self.assertRaises(OSError):
            decode(_ChunkStream(make_hdu(_EMPTY_PRIMARY)))

    def test_data_size(self) -> None:
        header = read_header(BlockReader(io.BytesIO(make_header(_EMPTY_PRIMARY))))
        self.assertEqual(data_size(header), 0)
        header = read_header(BlockReader(io.BytesIO(_bintable(pcount=3000))))
        self.assertEqual(data_size(header), 3012)
        header = read_header(
            BlockReader(io.BytesIO(_image_extension(np.zeros((3, 5), dtype=np.float32), -32)))
        )
        self.assertEqual(data_size(header), 60)


if __name__ == "__main__":
    unittest.main()
