"""
Brute force content discovery.

Finds posts, pages and media that the paged listing does not return
(drafts that leaked, unlisted items, orphaned attachments) by asking for
every id in [1, max_id] that is not already known.

Each scanned kind gets its own work queue and `concurrency` worker threads.
Workers never touch the result; they put DiscoveryEvent values on a shared
events queue and the calling thread folds them into a ScanResult.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

from wp_api_client import SCANNABLE_KINDS, ResourceKind, WordPressAPIError, dumps_record

DEFAULT_DELAY = 0.01

logger = logging.getLogger("wp_export.bruteforce")


class UnsupportedKindError(ValueError):
    """Raised for a content type that cannot be looked up by id."""


@dataclass(frozen=True)
class Found:
    kind: ResourceKind
    item_id: int
    record: dict


@dataclass(frozen=True)
class ProgressTick:
    kind: ResourceKind
    item_id: int


class Outcome(Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


@dataclass
class ScanResult:
    posts: list = field(default_factory=list)
    pages: list = field(default_factory=list)
    media: list = field(default_factory=list)

    @property
    def found(self) -> int:
        return len(self.posts) + len(self.pages) + len(self.media)

    def records(self, kind: ResourceKind) -> list:
        return {
            ResourceKind.POSTS: self.posts,
            ResourceKind.PAGES: self.pages,
            ResourceKind.MEDIA: self.media,
        }[ResourceKind(kind)]

    def add(self, kind: ResourceKind, record: dict):
        self.records(kind).append(record)


# Marks the end of a work queue (one per worker) and a finished worker on the events queue
_STOP = object()
_WORKER_DONE = object()


def _scannable(kind) -> ResourceKind:
    try:
        kind = ResourceKind(kind)
    except ValueError:
        raise UnsupportedKindError(f"unsupported content type: {kind}") from None
    if kind not in SCANNABLE_KINDS:
        raise UnsupportedKindError(f"unsupported content type: {kind.value}")
    return kind


class BruteForceScanner:
    """Look up id ranges through a client's fetch_by_id(kind, id)."""

    def __init__(self, client, concurrency: int = 5, delay: float = DEFAULT_DELAY,
                 cancel_event: threading.Event = None, verbose: bool = False):
        self.client = client
        self.concurrency = concurrency
        self.delay = delay
        self.cancel_event = cancel_event or threading.Event()
        self.verbose = verbose

    def cancel(self):
        """Ask running workers to stop after their current request.

        Cancellation sticks: later scan and scan_range calls on this scanner
        return at once until reset() is called.
        """
        self.cancel_event.set()

    def reset(self):
        """Clear a previous cancel() so the scanner can be used again."""
        self.cancel_event.clear()

    def _lookup(self, kind: ResourceKind, item_id: int):
        try:
            record = self.client.fetch_by_id(kind, item_id)
        except WordPressAPIError as e:
            logger.debug("%s %d: %s", kind.singular, item_id, e)
            return Outcome.ERROR, None
        except Exception:
            logger.warning("unexpected error looking up %s %d", kind.singular, item_id, exc_info=True)
            return Outcome.ERROR, None
        if record is None:
            return Outcome.ABSENT, None
        return Outcome.FOUND, record

    def _worker(self, kind: ResourceKind, work: queue.Queue, events: queue.Queue,
                stop: threading.Event):
        try:
            while not (self.cancel_event.is_set() or stop.is_set()):
                item_id = work.get()
                if item_id is _STOP:
                    break
                outcome, record = self._lookup(kind, item_id)
                if outcome is Outcome.FOUND:
                    events.put(Found(kind, item_id, record))
                events.put(ProgressTick(kind, item_id))
                if self.delay:
                    time.sleep(self.delay)
        finally:
            events.put(_WORKER_DONE)

    def stream(self, known_ids_by_kind, max_id: int, concurrency: int = None):
        """Yield DiscoveryEvents (Found / ProgressTick) as the workers produce them.

        Scans every scannable kind at once. Keys of known_ids_by_kind that are
        not scannable are ignored. Closing the generator early stops the workers.
        """
        if concurrency is None:
            concurrency = self.concurrency
        if concurrency < 1:
            logger.warning("concurrency %s is not positive, using 1", concurrency)
            concurrency = 1
        known_by_kind = {}
        for kind, ids in (known_ids_by_kind or {}).items():
            try:
                kind = _scannable(kind)
            except UnsupportedKindError:
                logger.debug("not scanning %s: no lookup by id", kind)
                continue
            known_by_kind[kind] = set(ids)

        events = queue.Queue()
        stop = threading.Event()
        workers = []
        for kind in SCANNABLE_KINDS:
            known = known_by_kind.get(kind, set())
            work = queue.Queue()
            for item_id in range(1, max_id + 1):
                if item_id not in known:
                    work.put(item_id)
            pending = work.qsize()
            for _ in range(concurrency):
                work.put(_STOP)
            logger.info("Scanning for missing %s (%d ids to check)...", kind.value, pending)
            for n in range(concurrency):
                t = threading.Thread(target=self._worker, args=(kind, work, events, stop),
                                     name=f"scan-{kind.value}-{n}", daemon=True)
                workers.append(t)

        for t in workers:
            t.start()

        running = len(workers)
        try:
            while running:
                event = events.get()
                if event is _WORKER_DONE:
                    running -= 1
                    continue
                yield event
        finally:
            stop.set()
            for t in workers:
                t.join()

    def scan(self, known_ids_by_kind, max_id: int, concurrency: int = None,
             on_event=None) -> ScanResult:
        """Find records at ids not in known_ids_by_kind, for ids 1..max_id.

        Lookup failures count as "nothing there"; this never raises for them.
        on_event, if given, is called with every Found and ProgressTick.
        """
        result = ScanResult()
        for event in self.stream(known_ids_by_kind, max_id, concurrency):
            if isinstance(event, Found):
                result.add(event.kind, event.record)
                if self.verbose:
                    logger.info("Found %s: %s", event.kind.singular, dumps_record(event.record))
            if on_event is not None:
                on_event(event)

        if result.found:
            logger.info("Brute force scan found %d additional items", result.found)
        else:
            logger.info("Brute force scan completed - no additional content found")
        return result

    def scan_range(self, kind, start_id: int, end_id: int) -> list:
        """Look up start_id..end_id one at a time, without known-id filtering."""
        kind = _scannable(kind)
        logger.info("Scanning %s IDs from %d to %d...", kind.value, start_id, end_id)

        found = []
        for item_id in range(start_id, end_id + 1):
            if self.cancel_event.is_set():
                break
            outcome, record = self._lookup(kind, item_id)
            if outcome is Outcome.FOUND:
                found.append(record)
            if self.delay:
                time.sleep(self.delay)
        return found
