from __future__ import annotations

import pytest

from output_bridge.line_parser import (
    NOOP,
    ControlEvent,
    LineBuffer,
    Update,
    parse_int,
    parse_line,
    sanitize,
)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("lamp0 = 1", Update("lamp0", 1)),
        ("lamp0=1", Update("lamp0", 1)),
        ("lamp0=1\r", Update("lamp0", 1)),
        ("  led.0 =  255 ", Update("led.0", 255)),
        ("bogus$$name = notanumber", Update("bogusname", 0)),
        ('"lamp2" = "1"', Update("lamp2", 1)),
        ("lamp3 =", Update("lamp3", 0)),
        ("lamp4 = 12abc", Update("lamp4", 12)),
        ("lamp5 = -3", Update("lamp5", 3)),
    ],
)
def test_parse_update_lines(line, expected):
    assert parse_line(line) == expected


def test_start_keyword_yields_control_event():
    assert parse_line("mame_start = pacman") == ControlEvent(title="pacman")


def test_start_keyword_sanitizes_title():
    assert parse_line("mame_start = sf2 ce!") == ControlEvent(title="sf2ce")


def test_stop_keyword_is_ignored():
    assert parse_line("mame_stop = 1") is NOOP


@pytest.mark.parametrize("line", ["", "lamp0 1", "no equals here", " = 1", "$$ = 4"])
def test_lines_without_usable_name_are_noop(line):
    assert parse_line(line) is NOOP


def test_only_first_equals_splits():
    assert parse_line("lamp0 = 1 = 2") == Update("lamp0", 12)


def test_sanitize_keeps_letters_digits_underscore_period():
    assert sanitize(' a_B.9 "x"\t\r\n') == "a_B.9x"


def test_sanitize_drops_non_ascii():
    assert sanitize("lämp0") == "lmp0"


def test_parse_int_defaults_to_zero():
    assert parse_int("") == 0
    assert parse_int("abc") == 0
    assert parse_int("42") == 42


def test_line_buffer_keeps_partial_fragment():
    buffer = LineBuffer("\r")

    assert buffer.feed(b"lamp0 = 1\rlam") == ["lamp0 = 1"]
    assert buffer.pending == b"lam"
    assert buffer.feed(b"p1 = 0\r") == ["lamp1 = 0"]
    assert buffer.pending == b""


def test_line_buffer_skips_empty_lines():
    buffer = LineBuffer("\r")
    assert buffer.feed(b"\r\r\rlamp0 = 1\r") == ["lamp0 = 1"]


def test_line_buffer_newline_terminator_is_configurable():
    buffer = LineBuffer("\n")

    lines = buffer.feed(b"lamp0=1\r\nlamp1 = 0\n")

    assert [parse_line(line) for line in lines] == [Update("lamp0", 1), Update("lamp1", 0)]


def test_line_buffer_clear_discards_fragment():
    buffer = LineBuffer("\r")
    buffer.feed(b"lamp0 = ")
    buffer.clear()
    assert buffer.feed(b"1\r") == ["1"]


def test_line_buffer_rejects_empty_terminator():
    with pytest.raises(ValueError):
        LineBuffer("")
