import logging

import pytest

from iptv_scan.common import LogConfig, configure_logging, read_url_lines, text_log_fmt


def test_skips_blank_lines(tmp_path):
    src = tmp_path / "urls.txt"
    src.write_text(
        "\nhttp://example.test/a\n\n   \nhttp://example.test/b\r\n\t\nhttp://example.test/c"
    )
    assert list(read_url_lines(src)) == [
        "http://example.test/a",
        "http://example.test/b",
        "http://example.test/c",
    ]


def test_empty_file(tmp_path):
    src = tmp_path / "urls.txt"
    src.write_text("")
    assert list(read_url_lines(src)) == []


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(read_url_lines(tmp_path / "nope.txt"))


def test_undecodable_line_is_skipped(tmp_path, caplog):
    src = tmp_path / "urls.txt"
    src.write_bytes(b"http://example.test/a\n\xff\xfe bad\nhttp://example.test/b\n")
    with caplog.at_level(logging.WARNING):
        urls = list(read_url_lines(src))
    assert urls == ["http://example.test/a", "http://example.test/b"]
    assert "line 2" in caplog.text


def test_file_released_on_early_exit(tmp_path):
    src = tmp_path / "urls.txt"
    src.write_text("http://example.test/a\nhttp://example.test/b\n")
    lines = read_url_lines(src)
    assert next(lines) == "http://example.test/a"
    lines.close()
    with pytest.raises(StopIteration):
        next(lines)


def test_configure_logging_text_mode():
    configure_logging(LogConfig(text=True, level="debug"))
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert root.handlers[0].formatter._fmt == text_log_fmt
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging(LogConfig())
    assert root.level == logging.INFO
    assert "%(levelname)s" in root.handlers[0].formatter._fmt
