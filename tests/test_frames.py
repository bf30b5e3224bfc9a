"""Tests for frame normalisation and response decoding."""

from __future__ import annotations

import json
import unittest

from asciigen.types import ParsePath
from asciigen.utils.frames import (
    blank_frame,
    clean_json_text,
    decode_frame_response,
    extract_fenced,
    normalize_frame,
)


def _assert_shape(case: unittest.TestCase, frame: str, width: int, height: int) -> None:
    lines = frame.split("\n")
    case.assertEqual(len(lines), height)
    for line in lines:
        case.assertEqual(len(line), width)


class NormalizeFrameTest(unittest.TestCase):
    """Shape is guaranteed for any input."""

    RAW_INPUTS = [
        "",
        None,
        "   \n\n  ",
        "x",
        "#" * 500,
        "\n".join("row %d %s" % (i, "=" * 200) for i in range(100)),
        "Here you go:\n```\n/\\\n\\/\n```\nHope you like it!",
        "```ascii\n  ~~~  \n ~~~~~ \n```",
        "a\r\nb\rc\td",
        "no fence close ```\n~~~",
    ]

    def test_every_input_has_exact_shape(self) -> None:
        for width, height in [(40, 20), (80, 24), (120, 40), (1, 1)]:
            for raw in self.RAW_INPUTS:
                with self.subTest(raw=raw, width=width, height=height):
                    _assert_shape(self, normalize_frame(raw, width, height), width, height)

    def test_empty_input_gives_blank_frame(self) -> None:
        self.assertEqual(normalize_frame("", 5, 3), blank_frame(5, 3))
        self.assertEqual(normalize_frame(None, 5, 3), "     \n     \n     ")

    def test_fenced_content_is_extracted(self) -> None:
        frame = normalize_frame("Sure!\n```\nab\ncd\n```\nEnjoy", 4, 2)
        self.assertEqual(frame, "ab  \ncd  ")

    def test_long_lines_and_extra_rows_are_truncated(self) -> None:
        frame = normalize_frame("abcdef\nghijkl\nmnopqr", 3, 2)
        self.assertEqual(frame, "abc\nghi")

    def test_tabs_and_carriage_returns(self) -> None:
        frame = normalize_frame("a\tb\r\nc", 6, 2)
        self.assertEqual(frame, "a    b\nc     ")

    def test_blank_frame(self) -> None:
        self.assertEqual(blank_frame(3, 2), "   \n   ")
        self.assertEqual(blank_frame(0, 0), "")


class DecodeFrameResponseTest(unittest.TestCase):
    """Structured payloads win over raw text."""

    def test_json_string(self) -> None:
        content, path = decode_frame_response(json.dumps("~~\n--"))
        self.assertEqual(content, "~~\n--")
        self.assertIs(path, ParsePath.STRUCTURED)

    def test_json_object_with_frame(self) -> None:
        content, path = decode_frame_response('```json\n{"frame": "**\\n.."}\n```')
        self.assertEqual(content, "**\n..")
        self.assertIs(path, ParsePath.STRUCTURED)

    def test_json_array(self) -> None:
        content, path = decode_frame_response('["first", "second"]')
        self.assertEqual(content, "first")
        self.assertIs(path, ParsePath.STRUCTURED)

    def test_plain_art_is_raw_text(self) -> None:
        art = " /\\_/\\\n( o.o )\n > ^ <"
        content, path = decode_frame_response(art)
        self.assertEqual(content, art)
        self.assertIs(path, ParsePath.RAW_TEXT)

    def test_json_without_frame_is_raw_text(self) -> None:
        text = '{"art": "~~"}'
        content, path = decode_frame_response(text)
        self.assertEqual(content, text)
        self.assertIs(path, ParsePath.RAW_TEXT)


class JsonHelpersTest(unittest.TestCase):
    def test_clean_json_text_strips_prose(self) -> None:
        self.assertEqual(clean_json_text('Result:\n["a", "b"]\nThanks'), '["a", "b"]')
        self.assertEqual(clean_json_text('```json\n{"x": [1]}\n```'), '{"x": [1]}')

    def test_extract_fenced_without_fence(self) -> None:
        self.assertEqual(extract_fenced("plain"), "plain")


if __name__ == "__main__":
    unittest.main()
