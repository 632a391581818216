"""Thread-safe pool of reusable control-plane channels."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Callable, Deque, Iterator, Optional, Set, TypeVar

import grpc

from gridsession.errors import PoolClosedError, PoolExhaustedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# status codes after which a channel is considered broken rather than just
# having failed one call
BROKEN_TRANSPORT_CODES = frozenset({grpc.StatusCode.UNAVAILABLE})


def is_transport_failure(exc: BaseException) -> bool:
    """Return True when ``exc`` indicates the channel itself is unusable."""

    if isinstance(exc, grpc.RpcError) and hasattr(exc, "code"):
        try:
            return exc.code() in BROKEN_TRANSPORT_CODES
        except Exception:  # noqa: BLE001
            return False
    return False


def _close_quietly(channel: grpc.Channel) -> None:
    try:
        channel.close()
    except Exception:  # noqa: BLE001
        LOGGER.debug("Suppress channel close error", exc_info=True)


class ChannelPool:
    """Hands out channels for exclusive, scoped use and recycles them.

    Channels are created lazily by ``factory``. Each lease is exclusive: a
    channel is either idle in the pool or leased to exactly one caller. With
    ``max_size`` set, leases block until a channel is released, for at most
    ``acquire_timeout`` seconds.
    """

    def __init__(
        self,
        factory: Callable[[], grpc.Channel],
        *,
        max_size: Optional[int] = None,
        acquire_timeout: Optional[float] = None,
    ) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be a positive integer or None")
        self._factory = factory
        self._max_size = max_size
        self._acquire_timeout = acquire_timeout
        self._idle: Deque[grpc.Channel] = deque()
        self._leased: Set[grpc.Channel] = set()
        self._building = 0
        self._closed = False
        self._cond = threading.Condition(threading.Lock())

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    @property
    def leased_count(self) -> int:
        with self._cond:
            return len(self._leased)

    @property
    def size(self) -> int:
        """Channels currently owned by the pool, idle or leased."""

        with self._cond:
            return len(self._idle) + len(self._leased)

    @property
    def closed(self) -> bool:
        return self._closed

    def _has_capacity(self) -> bool:
        if self._max_size is None:
            return True
        return len(self._idle) + len(self._leased) + self._building < self._max_size

    def _acquire(self) -> grpc.Channel:
        deadline = None if self._acquire_timeout is None else time.monotonic() + self._acquire_timeout
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError("Channel pool is closed")
                if self._idle:
                    channel = self._idle.pop()
                    self._leased.add(channel)
                    return channel
                if self._has_capacity():
                    self._building += 1
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise PoolExhaustedError(self._max_size or 0, self._acquire_timeout)
                LOGGER.debug("Channel pool at capacity (%s); waiting for a release", self._max_size)
                self._cond.wait(remaining)

        try:
            channel = self._factory()
        except BaseException:
            with self._cond:
                self._building -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._building -= 1
            if self._closed:
                self._cond.notify()
                _close_quietly(channel)
                raise PoolClosedError("Channel pool closed while a channel was being built")
            self._leased.add(channel)
        LOGGER.debug("Channel pool created channel #%s", self.size)
        return channel

    def _release(self, channel: grpc.Channel, *, broken: bool) -> None:
        with self._cond:
            if channel not in self._leased:
                # evicted through discard() while leased
                return
            self._leased.discard(channel)
            keep = not broken and not self._closed
            if keep:
                self._idle.append(channel)
            self._cond.notify()
        if not keep:
            _close_quietly(channel)

    @contextmanager
    def lease(self) -> Iterator[grpc.Channel]:
        """Yield a channel held exclusively for the duration of the block."""

        channel = self._acquire()
        broken = False
        try:
            yield channel
        except BaseException as exc:
            broken = is_transport_failure(exc)
            if broken:
                LOGGER.warning("Discarding channel after transport failure: %s", exc)
            raise
        finally:
            self._release(channel, broken=broken)

    def with_channel(self, work: Callable[[grpc.Channel], T]) -> T:
        """Run ``work`` with an exclusively leased channel and return its result."""

        with self.lease() as channel:
            return work(channel)

    def discard(self, channel: grpc.Channel) -> None:
        """Evict a channel so it is never handed out again.

        Safe to call on a leased channel; its lease then ends without the
        channel returning to the idle set.
        """

        with self._cond:
            was_known = channel in self._leased
            self._leased.discard(channel)
            try:
                self._idle.remove(channel)
                was_known = True
            except ValueError:
                pass
            self._cond.notify()
        if was_known:
            _close_quietly(channel)

    def close(self) -> None:
        """Close idle channels now and leased channels as their leases end."""

        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            outstanding = len(self._leased)
            self._cond.notify_all()
        for channel in idle:
            _close_quietly(channel)
        if outstanding:
            LOGGER.info("Channel pool closed with %s channel(s) still leased", outstanding)

    def __enter__(self) -> "ChannelPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"ChannelPool(idle={self.idle_count}, leased={self.leased_count}, "
            f"max_size={self._max_size}, closed={self._closed})"
        )
