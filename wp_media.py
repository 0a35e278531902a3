"""Download original media files referenced by exported media records."""

import logging
import os
import pathlib
import queue
import threading
from urllib.parse import urlparse

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger("wp_export.media")

_STOP = object()

# Connection errors and retryable statuses are already retried by the session's
# transport adapter; only failures while reading the body are retried here.
RETRY_ON = (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError)
RETRY_WAIT = wait_exponential(min=1, max=8)


def ensure_dir(path: pathlib.Path):
    path.mkdir(parents=True, exist_ok=True)


def plan_filenames(media_items) -> list:
    """Pair each downloadable media record with its local file name.

    Prefer the original file name; repeat names get the media id appended,
    plus a counter if that name is taken too.
    Records without a source_url are left out.
    """
    planned = []
    seen_names = set()
    for media in media_items:
        src = media.get("source_url")
        if not src:
            continue
        name = os.path.basename(urlparse(src).path) or f"{media.get('id')}.bin"
        if name in seen_names:
            stem, ext = os.path.splitext(name)
            name = f"{stem}-{media.get('id')}{ext}"
            n = 1
            while name in seen_names:
                n += 1
                name = f"{stem}-{media.get('id')}-{n}{ext}"
        seen_names.add(name)
        planned.append((media, name))
    return planned


def download_file(session: requests.Session, src: str, dest: pathlib.Path, timeout=40):
    tmp = dest.with_name(dest.name + ".part")
    with session.get(src, stream=True, timeout=timeout) as r:
        r.raise_for_status()
        with open(tmp, "wb") as f:
            for chunk in r.iter_content(1 << 15):
                if chunk:
                    f.write(chunk)
    tmp.replace(dest)


def _log_retry(state):
    logger.warning("Failed %s (attempt %d) :: %s", state.args[1], state.attempt_number,
                   state.outcome.exception())


def _download_one(session, src, dest, retries, timeout) -> bool:
    if dest.exists():
        return True
    retrying = Retrying(
        stop=stop_after_attempt(retries + 1),
        wait=RETRY_WAIT,
        retry=retry_if_exception_type(RETRY_ON),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        retrying(download_file, session, src, dest, timeout=timeout)
        return True
    except (requests.RequestException, OSError) as e:
        logger.warning("!! Failed %s :: %s", src, e)
        return False


def download_media(session: requests.Session, media_items, media_dir, concurrency=5,
                   retries=3, timeout=40):
    """Download media originals into media_dir with a pool of worker threads.

    Returns (downloaded_count, {media_id: local_path}). Files already on disk
    count as downloaded. A failed file is logged and skipped.
    """
    planned = plan_filenames(media_items)
    if not planned:
        return 0, {}

    media_dir = pathlib.Path(media_dir)
    ensure_dir(media_dir)

    workers = max(1, concurrency)
    jobs = queue.Queue()
    for media, name in planned:
        jobs.put((media, media_dir / name))
    for _ in range(workers):
        jobs.put(_STOP)

    paths = {}
    lock = threading.Lock()

    def worker():
        while True:
            job = jobs.get()
            if job is _STOP:
                return
            media, dest = job
            if _download_one(session, media["source_url"], dest, retries, timeout):
                with lock:
                    paths[media.get("id")] = dest.as_posix()

    threads = [threading.Thread(target=worker, name=f"media-{n}", daemon=True)
               for n in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    logger.info("downloaded %d of %d media file(s)", len(paths), len(planned))
    return len(paths), paths
