"""
FeedCoordinator - Cache, race, fallback and write-back for one feed query.

Responsibilities:
    - CACHE_CHECK: serve an unexpired cached post list without network work
    - RACING: run every relay (retry-wrapped) concurrently, first success wins
    - FALLBACK: try relays one at a time in priority order, collecting errors
    - Write successful results to the cache; failures never touch it
    - Coalesce concurrent queries for the same feed onto one in-flight task
    - Debounced start() / cancel() lifecycle for hosts that reconfigure often
"""
import asyncio
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from feeds.cache import DiskStorage, FeedCache
from feeds.client import RelayClient
from feeds.errors import RelayError
from feeds.constants import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RELAYS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from feeds.models import (
    CACHE_SOURCE,
    AcquisitionOutcome,
    AttemptError,
    Failure,
    Post,
    RelayDescriptor,
    Success,
)
from feeds.retry import with_retries
from core.logging.logger import get_logger
from core.logging.tags import TAG_COORD, TAG_FALLBACK
from core.utils.decorators import suppress_exceptions

if TYPE_CHECKING:
    from core.settings.models import AppSettings

logger = get_logger(__name__)

NO_URL_MESSAGE = "No feed URL provided"
FAILED_MESSAGE = "Failed to load"


class CoordinatorState(Enum):
    """Lifecycle state of the most recent start() run."""
    IDLE = auto()
    LOADING = auto()
    LOADED = auto()
    ERROR = auto()


class AcquisitionPhase(Enum):
    """Phases a single query passes through."""
    CACHE_CHECK = auto()
    RACING = auto()
    FALLBACK = auto()
    SUCCEEDED = auto()
    FAILED = auto()


class _InFlight:
    """A shared acquisition task, the limit it fetches under and its waiters."""
    __slots__ = ("task", "limit", "waiters")

    def __init__(self, task: asyncio.Task, limit: Optional[int]):
        self.task = task
        self.limit = limit
        self.waiters = 0

    def covers(self, limit: Optional[int]) -> bool:
        return self.limit is None or (limit is not None and limit <= self.limit)


class FeedCoordinator:
    """Orchestrates the full feed acquisition pipeline.

    Usage from a host::

        async with FeedCoordinator() as coord:
            outcome = await coord.query("https://blog.example.com/rss.xml", 10)
            if outcome.ok:
                render(outcome.posts)
            else:
                show_error(outcome.message)

    Hosts that reconfigure often call ``start()`` on every change and
    ``cancel()`` when they detach; only the last configuration is fetched.
    """

    def __init__(
        self,
        relays: Optional[Sequence[RelayDescriptor]] = None,
        cache: Optional[FeedCache] = None,
        client=None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        use_cache: bool = True,
    ):
        self.relays: Tuple[RelayDescriptor, ...] = tuple(relays or DEFAULT_RELAYS)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.debounce = debounce

        if not use_cache:
            self._cache = None
        else:
            self._cache = cache if cache is not None else FeedCache()
        self._client = client if client is not None else RelayClient()

        self._inflight: Dict[str, _InFlight] = {}
        self._posts: List[Post] = []
        self._state = CoordinatorState.IDLE
        self._pending: Optional[asyncio.Task] = None

        logger.info(
            f"{TAG_COORD} Initialised: relays={[r.name for r in self.relays]}, "
            f"retries={max_retries}, cache={'on' if self._cache else 'off'}"
        )

    @classmethod
    def from_settings(cls, settings: "AppSettings", client=None) -> "FeedCoordinator":
        """Build a coordinator from typed settings."""
        cache = None
        if settings.cache.enabled:
            directory = Path(settings.cache.directory) if settings.cache.directory else None
            cache = FeedCache(
                storage=DiskStorage(directory),
                ttl_seconds=settings.cache.ttl_seconds,
            )
        return cls(
            relays=settings.relays.relays,
            cache=cache,
            client=client,
            max_retries=settings.fetch.max_retries,
            retry_delay=settings.fetch.retry_delay,
            debounce=settings.fetch.debounce,
            use_cache=settings.cache.enabled,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def posts(self) -> List[Post]:
        """Posts from the most recent successful query (reference swap)."""
        return self._posts

    @property
    def cache(self) -> Optional[FeedCache]:
        return self._cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(self, feed_url: str, max_posts: Optional[int] = None) -> AcquisitionOutcome:
        """Acquire posts for *feed_url*. Never raises for relay or cache errors.

        Concurrent calls for the same URL share one acquisition. A caller
        whose limit is wider than the in-flight one waits for it to finish
        before starting its own, so one URL never has two acquisitions
        running at once.
        """
        url = (feed_url or "").strip()
        if not url:
            return Failure(reason=NO_URL_MESSAGE)
        limit = max_posts if max_posts is not None and max_posts > 0 else None

        while True:
            entry = self._inflight.get(url)
            if entry is None or entry.task.done():
                entry = _InFlight(asyncio.create_task(self._acquire(url, limit)), limit)
                self._inflight[url] = entry
                entry.task.add_done_callback(lambda _t, k=url, e=entry: self._forget(k, e))
                break
            if entry.covers(limit):
                logger.debug(f"{TAG_COORD} Joining in-flight query for {url[:60]}")
                break
            logger.debug(
                f"{TAG_COORD} Waiting for in-flight query for {url[:60]} "
                f"(limit {entry.limit}) before fetching {limit or 'all'}"
            )
            await self._wait_for(entry, url)

        outcome = await self._wait_for(entry, url)
        if isinstance(outcome, Success) and limit is not None and len(outcome.posts) > limit:
            outcome = Success(posts=outcome.posts[:limit], source_relay=outcome.source_relay)
        return outcome

    def start(
        self,
        feed_url: str,
        max_posts: Optional[int] = None,
        on_outcome: Optional[Callable[[AcquisitionOutcome], None]] = None,
    ) -> asyncio.Task:
        """Schedule a debounced query, superseding any pending one.

        Must be called from a running event loop. *on_outcome* receives the
        outcome unless the run is superseded or cancelled.
        """
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.get_running_loop().create_task(
            self._run_debounced(feed_url, max_posts, on_outcome)
        )
        return self._pending

    def cancel(self) -> None:
        """Cancel the pending or running start() query and its relay attempts."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._state = CoordinatorState.IDLE

    async def close(self) -> None:
        """Cancel outstanding work and release the HTTP session."""
        pending = self._pending
        self.cancel()
        if pending is not None:
            await asyncio.gather(pending, return_exceptions=True)
        tasks = [entry.task for entry in self._inflight.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "FeedCoordinator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Lifecycle internals
    # ------------------------------------------------------------------

    async def _run_debounced(
        self,
        feed_url: str,
        max_posts: Optional[int],
        on_outcome: Optional[Callable[[AcquisitionOutcome], None]],
    ) -> AcquisitionOutcome:
        try:
            if self.debounce > 0:
                await asyncio.sleep(self.debounce)
            self._state = CoordinatorState.LOADING
            outcome = await self.query(feed_url, max_posts)
        except asyncio.CancelledError:
            if self._state is CoordinatorState.LOADING:
                self._state = CoordinatorState.IDLE
            raise

        self._state = CoordinatorState.LOADED if outcome.ok else CoordinatorState.ERROR
        if on_outcome is not None:
            suppress_exceptions(logger, f"{TAG_COORD} Outcome callback failed")(on_outcome)(outcome)
        return outcome

    async def _wait_for(self, entry: _InFlight, url: str) -> AcquisitionOutcome:
        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                logger.debug(f"{TAG_COORD} Last waiter left, cancelling {url[:60]}")
                entry.task.cancel()

    def _forget(self, key: str, entry: _InFlight) -> None:
        if self._inflight.get(key) is entry:
            del self._inflight[key]

    # ------------------------------------------------------------------
    # Acquisition state machine
    # ------------------------------------------------------------------

    async def _acquire(self, url: str, limit: Optional[int]) -> AcquisitionOutcome:
        self._enter(AcquisitionPhase.CACHE_CHECK, url)
        if self._cache is not None:
            cached = self._cache.get(url, limit)
            if cached:
                return self._succeed(url, cached, CACHE_SOURCE, limit)

        self._enter(AcquisitionPhase.RACING, url)
        raced = await self._race(url, limit)
        if raced is not None:
            return self._succeed(url, *raced, limit)

        self._enter(AcquisitionPhase.FALLBACK, url)
        posts, relay_name, errors = await self._fallback(url, limit)
        if posts is not None:
            return self._succeed(url, posts, relay_name, limit)

        self._enter(AcquisitionPhase.FAILED, url)
        failure = Failure(errors=tuple(errors), reason=FAILED_MESSAGE)
        logger.error(f"{TAG_COORD} {failure.message}")
        return failure

    async def _race(self, url: str, limit: Optional[int]) -> Optional[Tuple[List[Post], str]]:
        tasks = {
            asyncio.create_task(self._attempt(relay, url, limit), name=f"relay:{relay.name}"): relay
            for relay in self.relays
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    relay = tasks[task]
                    exc = task.exception()
                    if exc is None:
                        logger.info(f"{TAG_COORD} Race won by {relay.name} for {url[:60]}")
                        return task.result(), relay.name
                    self._log_attempt_failure(relay, exc, "race")
            return None
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _fallback(
        self, url: str, limit: Optional[int]
    ) -> Tuple[Optional[List[Post]], Optional[str], List[AttemptError]]:
        errors: List[AttemptError] = []
        for relay in self.relays:
            logger.info(f"{TAG_FALLBACK} Trying {relay.name} alone for {url[:60]}")
            try:
                posts = await self._attempt(relay, url, limit)
            except Exception as e:
                self._log_attempt_failure(relay, e, "fallback")
                errors.append(AttemptError(relay=relay.name, message=str(e) or type(e).__name__))
                continue
            if errors:
                logger.info(
                    f"{TAG_FALLBACK} {relay.name} succeeded after "
                    f"{', '.join(f'{err.relay}: {err.message}' for err in errors)}"
                )
            return posts, relay.name, errors
        return None, None, errors

    async def _attempt(self, relay: RelayDescriptor, url: str, limit: Optional[int]) -> List[Post]:
        return await with_retries(
            self._client,
            relay,
            url,
            max_retries=self.max_retries,
            delay=self.retry_delay,
            max_posts=limit,
        )

    def _succeed(
        self, url: str, posts: List[Post], source: str, limit: Optional[int]
    ) -> Success:
        if source != CACHE_SOURCE and self._cache is not None:
            self._cache.set(url, posts, limit)
        if limit is not None:
            posts = posts[:limit]
        self._posts = list(posts)
        self._enter(AcquisitionPhase.SUCCEEDED, url)
        logger.info(f"{TAG_COORD} {len(posts)} posts for {url[:60]} from {source}")
        return Success(posts=list(posts), source_relay=source)

    @staticmethod
    def _enter(phase: AcquisitionPhase, url: str) -> None:
        logger.debug(f"{TAG_COORD} {url[:60]} -> {phase.name}")

    @staticmethod
    def _log_attempt_failure(relay: RelayDescriptor, exc: BaseException, stage: str) -> None:
        if isinstance(exc, RelayError):
            logger.warning(f"{TAG_COORD} {relay.name} failed during {stage}: {exc}")
        else:
            logger.error(
                f"{TAG_COORD} {relay.name} crashed during {stage}: {exc!r}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
