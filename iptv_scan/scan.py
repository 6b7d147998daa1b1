import asyncio
import logging
import os
import time
from collections.abc import Sequence
from pathlib import Path

import aiofiles
import click
import httpx
from dotenv import load_dotenv

from iptv_scan.common import Config, LogConfig, configure_logging, read_url_lines
from iptv_scan.verify import (
    DEFAULT_TIMEOUT,
    Outcome,
    Summary,
    check_url,
    scan_response,
    verify_urls,
)

N_WORKERS: int = 1
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")
log = logging.getLogger(__name__)


async def averify_url(
    client: httpx.AsyncClient, url: str, search_term: str | None
) -> Outcome:
    log.debug("Retrieving url: %s", url)
    try:
        check_url(url)
        r = await client.get(url)
        r.raise_for_status()
        body = r.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log.error("Error attempting to fetch %s - %s", url, str(e))
        return Outcome.failure(url, e)
    return scan_response(url, body, search_term)


class VerifyWorker:
    def __init__(
        self,
        httpx_client: httpx.AsyncClient,
        url_queue: asyncio.Queue,
        result_queue: asyncio.Queue,
        search_term: str | None,
    ):
        self.httpx_client = httpx_client
        self.url_queue = url_queue
        self.result_queue = result_queue
        self.search_term = search_term

    async def run(self):
        while not self.url_queue.empty():
            counter, url = await self.url_queue.get()
            outcome = await averify_url(self.httpx_client, url, self.search_term)
            await self.result_queue.put((counter, outcome))


async def reassemble(queue: asyncio.Queue, n_items: int) -> list[Outcome]:
    """Collect ``n_items`` results from ``queue`` back into input order."""
    ordered: list[Outcome] = []
    counter = 0
    local_items: dict[int, Outcome] = {}

    while counter < n_items:
        item: tuple[int, Outcome] = await queue.get()
        if item[0] == counter:
            ordered.append(item[1])
            counter += 1
        else:
            local_items[item[0]] = item[1]

        while counter in local_items:
            ordered.append(local_items.pop(counter))
            counter += 1
    return ordered


async def verify_concurrently(
    urls: Sequence[str],
    search_term: str | None,
    n_workers: int,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[Outcome]:
    url_queue = asyncio.Queue()
    result_queue = asyncio.Queue()
    for counter, url in enumerate(urls):
        await url_queue.put((counter, url))
    log.debug("Populated URL queue with %d urls", len(urls))

    async with httpx.AsyncClient(
        http2=True, follow_redirects=True, timeout=timeout
    ) as client:
        async with asyncio.TaskGroup() as tg:
            for n in range(n_workers):
                worker = VerifyWorker(
                    httpx_client=client,
                    url_queue=url_queue,
                    result_queue=result_queue,
                    search_term=search_term,
                )
                tg.create_task(worker.run(), name=f"VerifyWorker {n}")

            t_reassemble = tg.create_task(
                reassemble(queue=result_queue, n_items=len(urls)),
                name="reassemble",
            )

    return t_reassemble.result()


def playlist_entries(outcomes: Sequence[Outcome]) -> list[tuple[str, str]]:
    """(title, url) pairs for the outcomes worth keeping in a playlist."""
    entries = []
    for o in outcomes:
        if not o.ok:
            continue
        if o.searched:
            if o.matches:
                entries.append((o.matches[0].strip(), o.url))
        else:
            entries.append((o.url, o.url))
    return entries


async def write_report(outcomes: Sequence[Outcome], out_file: Path) -> int:
    entries = playlist_entries(outcomes)
    async with aiofiles.open(out_file, "w", encoding="utf-8") as hdl:
        await hdl.write("#EXTM3U\n")
        for title, url in entries:
            await hdl.write(f"#EXTINF:-1,{title}\n{url}\n")
    return len(entries)


def log_outcome(outcome: Outcome):
    # Failures are already logged at ERROR where the fetch happens.
    if not outcome.ok:
        return
    if not outcome.searched:
        log.info("%s: ok", outcome.url)
    else:
        log.info("%s: %d match(es)", outcome.url, len(outcome.matches))
        for ln in outcome.matches:
            log.info("    %s", ln)


def run(config: Config) -> Summary:
    t0 = time.monotonic()
    outcomes: list[Outcome] = []
    if config.workers > 1:
        urls = list(read_url_lines(config.source_file))
        log.info("Read %d urls from %s", len(urls), config.source_file)
        log.info("Beginning verification with %d workers", config.workers)
        outcomes = asyncio.run(
            verify_concurrently(
                urls, config.search_term, config.workers, config.timeout
            )
        )
        for outcome in outcomes:
            log_outcome(outcome)
    else:
        urls = read_url_lines(config.source_file)
        for outcome in verify_urls(urls, config.search_term, timeout=config.timeout):
            log_outcome(outcome)
            outcomes.append(outcome)
    dt = time.monotonic() - t0

    n_written = asyncio.run(write_report(outcomes, config.target_file))
    log.info("Wrote %d entries to %s", n_written, config.target_file)

    summary = Summary.from_outcomes(outcomes)
    log.info(
        "Verified %d urls in %f seconds: %d ok, %d failed, %d matched",
        summary.total,
        dt,
        summary.succeeded,
        summary.failed,
        summary.matched,
    )
    return summary


def check_output_dir(ctx, param, value: Path) -> Path:
    if not value.parent.is_dir():
        raise click.BadParameter(f"Directory {str(value.parent)!r} does not exist.")
    return value


@click.command()
@click.option(
    "-f",
    "--file",
    "source_file",
    required=True,
    envvar="IPTV_SRC_FILE",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="The input file with the collection of links to verify",
)
@click.option(
    "-s",
    "--search",
    "search_term",
    envvar="IPTV_SEARCH",
    help="The search term to use on responses (required, empty to skip searching)",
)
@click.option(
    "-o",
    "--output",
    "target_file",
    required=True,
    envvar="IPTV_TARGET_FILE",
    type=click.Path(dir_okay=False, path_type=Path),
    callback=check_output_dir,
    help="The output file to write the m3u8 playlist to",
)
@click.option(
    "-t", "--text", is_flag=True, help="Log bare messages without timestamps or levels"
)
@click.option(
    "--log-level",
    envvar="IPTV_LOG_LEVEL",
    default="info",
    show_default=True,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
)
@click.option(
    "--timeout",
    envvar="IPTV_TIMEOUT",
    default=DEFAULT_TIMEOUT,
    show_default=True,
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds to wait on each request",
)
@click.option(
    "-w",
    "--workers",
    envvar="IPTV_WORKERS",
    default=N_WORKERS,
    show_default=True,
    type=click.IntRange(min=1),
    help="Number of concurrent fetches; 1 fetches strictly in order",
)
def cli(
    source_file: Path,
    search_term: str | None,
    target_file: Path,
    text: bool,
    log_level: str,
    timeout: float,
    workers: int,
):
    """Fetch every URL listed in the input file and report matching lines."""
    if search_term is None:
        # click skips empty environment values; IPTV_SEARCH="" still means "don't search"
        if os.environ.get("IPTV_SEARCH") != "":
            raise click.MissingParameter(param_hint="'-s' / '--search'", param_type="option")
        search_term = ""
    configure_logging(LogConfig(text=text, level=log_level))
    config = Config(
        source_file=source_file,
        search_term=search_term or None,
        target_file=target_file,
        timeout=timeout,
        workers=workers,
    )
    log.debug("%s", config)
    run(config)
    log.debug("Command completed")


def main():
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
