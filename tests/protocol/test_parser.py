"""Tests for the request tokenizer and argument parsers."""

import pytest

from minion_mpd.protocol.errors import ArgError
from minion_mpd.protocol.parser import (
    parse_bool,
    parse_filters,
    parse_float,
    parse_priority,
    parse_range,
    parse_seek_time,
    parse_time_range,
    parse_uint,
    parse_volume,
    tokenize,
)


class TestTokenize:
    """Tests for tokenize."""

    def test_bare_words(self):
        assert tokenize("play 3") == ["play", "3"]

    def test_extra_whitespace(self):
        assert tokenize("  seek\t1   20 ") == ["seek", "1", "20"]

    def test_quoted_argument_with_spaces(self):
        assert tokenize('add "Artist A/Album X"') == ["add", "Artist A/Album X"]

    def test_backslash_escapes(self):
        line = r'find title "say \"hi\" \\ bye"'
        assert tokenize(line) == ["find", "title", 'say "hi" \\ bye']

    def test_empty_quoted_argument(self):
        assert tokenize('find album ""') == ["find", "album", ""]

    def test_empty_line(self):
        assert tokenize("") == []

    def test_missing_closing_quote(self):
        with pytest.raises(ArgError):
            tokenize('add "unterminated')

    def test_garbage_after_quote(self):
        with pytest.raises(ArgError):
            tokenize('add "a"b')


class TestScalars:
    """Tests for number, boolean and volume parsing."""

    def test_uint(self):
        assert parse_uint("12") == 12
        with pytest.raises(ArgError):
            parse_uint("-1")
        with pytest.raises(ArgError):
            parse_uint("twelve")

    def test_bool(self):
        assert parse_bool("1") is True
        assert parse_bool("0") is False
        with pytest.raises(ArgError):
            parse_bool("yes")

    def test_float_rejects_nan(self):
        assert parse_float("1.5") == 1.5
        with pytest.raises(ArgError):
            parse_float("nan")

    def test_priority_bounds(self):
        assert parse_priority("255") == 255
        with pytest.raises(ArgError):
            parse_priority("256")

    def test_volume_bounds(self):
        assert parse_volume("0") == 0
        with pytest.raises(ArgError):
            parse_volume("101")


class TestRanges:
    """Tests for position and time ranges."""

    def test_single_position(self):
        assert parse_range("3") == (3, 4)

    def test_closed_range(self):
        assert parse_range("1:3") == (1, 3)

    def test_open_range(self):
        assert parse_range("2:") == (2, None)

    def test_reversed_range(self):
        with pytest.raises(ArgError):
            parse_range("3:1")

    def test_time_range(self):
        assert parse_time_range("1.5:30") == (1.5, 30.0)
        assert parse_time_range("10:") == (10.0, None)
        assert parse_time_range(":") == (None, None)

    def test_time_range_invalid(self):
        with pytest.raises(ArgError):
            parse_time_range("30:10")
        with pytest.raises(ArgError):
            parse_time_range("30")

    def test_seek_time(self):
        assert parse_seek_time("12.5") == (12.5, False)
        assert parse_seek_time("+5") == (5.0, True)
        assert parse_seek_time("-3") == (-3.0, True)


class TestFilters:
    """Tests for parse_filters."""

    def test_pairs(self):
        assert parse_filters(["Artist", "A", "album", "X"]) == [("artist", "A"), ("album", "X")]

    def test_special_tags(self):
        assert parse_filters(["any", "x", "file", "y", "base", "z"]) == [
            ("any", "x"),
            ("file", "y"),
            ("base", "z"),
        ]

    def test_odd_count(self):
        with pytest.raises(ArgError, match="Incorrect number of filter arguments"):
            parse_filters(["artist"])

    def test_unknown_tag(self):
        with pytest.raises(ArgError, match="Unknown filter type"):
            parse_filters(["composer", "Bach"])
