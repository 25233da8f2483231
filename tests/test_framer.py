import pytest

from n2kserver import LineFramer, N2KLineTooLongError


def test_partial_line_across_chunks():
    framer = LineFramer()
    assert framer.feed(b"12,3") == []
    assert framer.pending == 4
    assert framer.feed(b"4,56\n") == ["12,34,56"]
    assert framer.pending == 0


def test_several_lines_in_one_chunk():
    framer = LineFramer()
    assert framer.feed(b"one\ntwo\r\nthr") == ["one", "two"]
    assert framer.feed(b"ee\n") == ["three"]


def test_empty_lines_are_emitted():
    framer = LineFramer()
    assert framer.feed(b"\n\n") == ["", ""]


def test_close_discards_partial_line():
    framer = LineFramer()
    framer.feed(b"dangling")
    framer.close()
    assert framer.pending == 0
    assert framer.feed(b"more\n") == []


def test_invalid_utf8_is_replaced():
    framer = LineFramer()
    assert framer.feed(b"ab\xffcd\n") == ["ab�cd"]


def test_max_line_length_on_partial_line():
    framer = LineFramer(max_line_length=8)
    with pytest.raises(N2KLineTooLongError):
        framer.feed(b"0123456789")


def test_max_line_length_on_complete_line():
    framer = LineFramer(max_line_length=8)
    assert framer.feed(b"short\n") == ["short"]
    with pytest.raises(N2KLineTooLongError):
        framer.feed(b"0123456789\n")
