#!/usr/bin/env python3
"""
clickup-download - fetch a URL to a local file

Retries with backoff, per-attempt timeout, resume of partial downloads and a
progress bar. Used standalone and by clickup.py for attachments.
"""

import argparse
import logging
import os
import random
import sys
import time
from pathlib import Path
from typing import Optional, Union

import requests
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


USER_AGENT = "ClickUp-Downloader/1.0"
DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 64 * 1024
RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class DownloadFailed(Exception):
    """Raised when a file could not be fetched."""
    pass


class _RetryableError(Exception):
    pass


def backoff_sleep(base: float, attempt: int, cap: float = 30.0) -> None:
    delay = min(cap, base * (2 ** attempt))
    delay = delay * (0.5 + random.random())  # jitter 0.5x-1.5x
    time.sleep(delay)


def format_bytes(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    if n < 1024 ** 2:
        return f"{n // 1024}KB"
    if n < 1024 ** 3:
        return f"{n // 1024 ** 2}MB"
    return f"{n // 1024 ** 3}GB"


def _make_progress(quiet: bool) -> Progress:
    return Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=Console(stderr=True),
        disable=quiet,
        transient=True,
    )


def _fetch_once(
    session: requests.Session,
    url: str,
    path: Path,
    timeout: float,
    resume: bool,
    quiet: bool,
) -> None:
    offset = path.stat().st_size if resume and path.exists() else 0
    req_headers = {"User-Agent": USER_AGENT}
    if offset:
        req_headers["Range"] = f"bytes={offset}-"
        logging.info("Resuming download. Current size: %s", format_bytes(offset))

    try:
        with session.get(url, headers=req_headers, stream=True, timeout=timeout, allow_redirects=True) as r:
            status = r.status_code
            logging.debug("GET %s -> HTTP %s", url, status)
            if status == 416 and offset:
                # server has nothing past what we already hold
                return
            if status in RETRYABLE_STATUS:
                raise _RetryableError(f"HTTP {status}")
            if status >= 400:
                raise DownloadFailed(f"HTTP {status} for {url}")

            appending = bool(offset) and status == 206
            total = int(r.headers.get("Content-Length") or 0)
            done = offset if appending else 0
            with _make_progress(quiet) as progress:
                task = progress.add_task(path.name, total=(total + done) or None, completed=done)
                with open(path, "ab" if appending else "wb") as f:
                    for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        done += len(chunk)
                        progress.update(task, completed=done)
    except (requests.ConnectionError, requests.Timeout, requests.exceptions.ChunkedEncodingError) as e:
        raise _RetryableError(str(e)) from e
    except requests.RequestException as e:
        raise DownloadFailed(f"Download failed: {e}") from e
    except OSError as e:
        raise DownloadFailed(f"Cannot write {path}: {e}") from e


def download_file(
    url: str,
    output_path: Union[str, Path],
    retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
    resume: bool = False,
    quiet: bool = False,
    session: Optional[requests.Session] = None,
    base_delay: float = 1.0,
) -> Path:
    """Download url to output_path and return the path.

    Makes at most `retries` attempts. Connection errors, timeouts and HTTP
    429/5xx are retried; any other request or file error fails immediately
    with DownloadFailed. On failure the
    partial file is kept only when resuming.
    """
    if not url.startswith(("http://", "https://")):
        raise DownloadFailed(f"Invalid URL format: {url} (must start with http:// or https://)")
    path = Path(output_path).expanduser()
    session = session or requests.Session()
    attempts = max(1, int(retries))

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DownloadFailed(f"Cannot create {path.parent}: {e}") from e

    try:
        attempt = 0
        while True:
            attempt += 1
            try:
                _fetch_once(session, url, path, timeout, resume, quiet)
                break
            except _RetryableError as e:
                logging.warning("Download attempt %d/%d failed: %s", attempt, attempts, e)
                if attempt >= attempts:
                    raise DownloadFailed(f"Download failed after {attempts} attempts: {e}") from e
                backoff_sleep(base_delay, attempt - 1)

        size = path.stat().st_size if path.is_file() else 0
        if size == 0:
            raise DownloadFailed(f"Downloaded file is empty: {path}")
    except DownloadFailed:
        if path.is_file() and not resume:
            logging.info("Removing partial download %s", path)
            path.unlink()
        raise

    logging.info("Downloaded %s (%s)", path, format_bytes(size))
    return path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")


def _positive_int(val: str) -> int:
    n = int(val)
    if n < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="clickup-download",
        description="Download files from URLs with retry logic and progress indication.",
    )
    p.add_argument("-r", "--retries", type=_positive_int,
                   default=_env_int("CLICKUP_DOWNLOAD_RETRIES", DEFAULT_RETRIES),
                   help="Maximum attempts (default: 3)")
    p.add_argument("-t", "--timeout", type=float,
                   default=_env_int("CLICKUP_DOWNLOAD_TIMEOUT", DEFAULT_TIMEOUT),
                   help="Per-attempt timeout in seconds (default: 30)")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    p.add_argument("-q", "--quiet", action="store_true", help="Suppress the progress bar")
    p.add_argument("-c", "--continue", dest="resume", action="store_true", help="Resume a partial download")
    p.add_argument("url", help="Source URL")
    p.add_argument("output", help="Target file path")
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s: %(message)s")
    logging.debug("URL: %s", args.url)
    logging.debug("Target: %s", args.output)
    try:
        path = download_file(
            args.url,
            args.output,
            retries=args.retries,
            timeout=args.timeout,
            resume=args.resume,
            quiet=args.quiet,
        )
    except DownloadFailed as e:
        logging.error("%s", e)
        return 1
    except KeyboardInterrupt:
        print("\nDownload cancelled.", file=sys.stderr)
        return 130
    print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
