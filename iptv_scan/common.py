import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "Config",
    "LogConfig",
    "configure_logging",
    "log_fmt",
    "read_url_lines",
    "text_log_fmt",
]

log_fmt: str = "%(asctime)s [%(name)s]: [%(levelname)s]: {%(taskName)s}: %(message)s"
text_log_fmt: str = "%(message)s"
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    source_file: Path
    search_term: str | None
    target_file: Path
    timeout: float
    workers: int = 1


@dataclass(frozen=True)
class LogConfig:
    text: bool = False
    level: str = "info"


def configure_logging(config: LogConfig) -> None:
    """Set up the root logger.

    Text mode drops the timestamp, logger name and level and emits bare
    messages only. Safe to call more than once.
    """
    fmt = text_log_fmt if config.text else log_fmt
    logging.basicConfig(format=fmt, level=config.level.upper(), force=True)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if config.text:
        log.debug("Logger initialized with simple text output")
    else:
        log.debug("Logger initialized with default settings")


def read_url_lines(fname: str | Path) -> Iterator[str]:
    """Lazily yield the non-blank lines of ``fname``, stripped.

    Opening the file is fatal (``OSError`` propagates). A line that is not
    valid UTF-8 is logged and skipped.
    """
    with Path(fname).open("rb") as hdl:
        for lineno, raw in enumerate(hdl, start=1):
            try:
                line = raw.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                log.warning("Skipping unreadable line %d of %s - %s", lineno, fname, e)
                continue
            if line:
                yield line
