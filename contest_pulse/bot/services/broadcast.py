"""Contest-room broadcast bus.

Services receive an :class:`EventPublisher` and call ``publish`` only after
their transaction committed. The bus fans every event out to:

- queue subscribers of the event's contest room (dashboards, websocket
  bridges, tests), each with a bounded ``asyncio.Queue``;
- sinks: async callbacks bound to one contest or to every room (Telegram
  delivery, logging).

Events of one contest are stamped with a monotonically increasing ``seq`` and
delivered under the room lock, so every subscriber observes them in emission
order. Nothing is replayed: a subscriber that falls behind is marked
``lagged`` and has to re-read the current state, then call ``resync``.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import AsyncIterator, Awaitable, Callable, ClassVar, Optional, Protocol
from uuid import UUID

from contest_pulse.config import Settings
from contest_pulse.db.schemas.event import ContestEvent
from contest_pulse.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)

EventSink = Callable[[ContestEvent], Awaitable[None]]


class EventPublisher(Protocol):
	async def publish(self, event: ContestEvent) -> None: ...


class NullPublisher:
	"""Publisher that drops every event."""

	_instance: ClassVar[Optional["NullPublisher"]] = None

	def __new__(cls) -> "NullPublisher":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	async def publish(self, event: ContestEvent) -> None:
		logger.debug("Dropping %s for contest %s", event.type, event.contest_id)


class Subscription:
	"""Async iterator over the events of one contest room."""

	def __init__(self, bus: "BroadcastBus", contest_id: UUID, maxsize: int) -> None:
		self.contest_id = contest_id
		self.lagged = False
		self._bus = bus
		self._queue: asyncio.Queue[ContestEvent] = asyncio.Queue(maxsize=maxsize)
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def pending(self) -> int:
		return self._queue.qsize()

	def _offer(self, event: ContestEvent) -> None:
		if self._closed:
			return
		try:
			self._queue.put_nowait(event)
		except asyncio.QueueFull:
			# keep the newest notifications; the client must do a full re-read
			self._queue.get_nowait()
			self._queue.put_nowait(event)
			if not self.lagged:
				logger.warning("Subscriber of contest %s lagged; oldest events dropped", self.contest_id)
			self.lagged = True

	async def get(self, timeout: float | None = None) -> ContestEvent:
		if timeout is None:
			return await self._queue.get()
		return await asyncio.wait_for(self._queue.get(), timeout)

	def get_nowait(self) -> ContestEvent:
		return self._queue.get_nowait()

	def drain(self) -> list[ContestEvent]:
		events: list[ContestEvent] = []
		while not self._queue.empty():
			events.append(self._queue.get_nowait())
		return events

	def resync(self) -> list[ContestEvent]:
		"""
		Call after re-reading the current state: drops whatever is still queued
		and clears ``lagged``. Returns the dropped events.
		"""
		stale = self.drain()
		self.lagged = False
		return stale

	def close(self) -> None:
		if not self._closed:
			self._closed = True
			self._bus._unsubscribe(self)

	def __aiter__(self) -> AsyncIterator[ContestEvent]:
		return self._iterate()

	async def _iterate(self) -> AsyncIterator[ContestEvent]:
		while not self._closed:
			yield await self._queue.get()

	async def __aenter__(self) -> "Subscription":
		return self

	async def __aexit__(self, *exc_info) -> None:
		self.close()


class BroadcastBus:
	def __init__(self, queue_size: int | None = None) -> None:
		self._queue_size = queue_size or Settings().broadcast_queue_size
		self._subscribers: dict[UUID, set[Subscription]] = defaultdict(set)
		self._sinks: list[tuple[Optional[UUID], EventSink]] = []
		self._room_locks: KeyedLocks[UUID] = KeyedLocks()
		self._seq: dict[UUID, int] = defaultdict(int)

	def subscribe(self, contest_id: UUID) -> Subscription:
		sub = Subscription(self, contest_id, self._queue_size)
		self._subscribers[contest_id].add(sub)
		logger.debug("New subscriber for contest %s (%d total)", contest_id, len(self._subscribers[contest_id]))
		return sub

	def _unsubscribe(self, sub: Subscription) -> None:
		room = self._subscribers.get(sub.contest_id)
		if room is None:
			return
		room.discard(sub)
		if not room:
			self._subscribers.pop(sub.contest_id, None)

	def subscriber_count(self, contest_id: UUID) -> int:
		return len(self._subscribers.get(contest_id, ()))

	def add_sink(self, sink: EventSink, contest_id: UUID | None = None) -> None:
		"""Register an async callback for one room, or for every room when ``contest_id`` is None."""
		self._sinks.append((contest_id, sink))

	def remove_sink(self, sink: EventSink) -> None:
		self._sinks = [(room, s) for room, s in self._sinks if s is not sink]

	def last_seq(self, contest_id: UUID) -> int:
		return self._seq.get(contest_id, 0)

	def close_room(self, contest_id: UUID) -> None:
		"""Forget a finished contest: close its subscribers, drop its sinks and reset its seq."""
		for sub in list(self._subscribers.get(contest_id, ())):
			sub.close()
		self._subscribers.pop(contest_id, None)
		self._sinks = [(room, s) for room, s in self._sinks if room != contest_id]
		self._seq.pop(contest_id, None)
		logger.info("Closed broadcast room of contest %s", contest_id)

	async def publish(self, event: ContestEvent) -> None:
		"""Deliver ``event`` to its room. Never raises."""
		try:
			async with self._room_locks.hold(event.contest_id):
				self._seq[event.contest_id] += 1
				stamped = event.model_copy(update={"seq": self._seq[event.contest_id]})

				for sub in list(self._subscribers.get(event.contest_id, ())):
					sub._offer(stamped)

				for room, sink in list(self._sinks):
					if room is not None and room != event.contest_id:
						continue
					try:
						await sink(stamped)
					except Exception:
						logger.exception(
							"Event sink %r failed for %s seq=%s",
							sink,
							stamped.type,
							stamped.seq,
						)
			logger.debug("Published %s for contest %s seq=%s", event.type, event.contest_id, stamped.seq)
		except Exception:
			logger.exception("Failed to publish %s for contest %s", event.type, event.contest_id)


async def publish_all(publisher: EventPublisher, *events: ContestEvent) -> None:
	"""Publish in order; a failing publisher is logged and never propagates."""
	for event in events:
		try:
			await publisher.publish(event)
		except Exception:
			logger.exception("Publisher %r failed for %s", publisher, event.type)


__all__ = [
	"BroadcastBus",
	"EventPublisher",
	"EventSink",
	"NullPublisher",
	"Subscription",
	"publish_all",
]
