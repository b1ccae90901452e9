import asyncio
import collections
import inspect
import typing


CallbackType = typing.Callable[..., typing.Any]


# Events emitted by the sync engine
PATTERN_UPDATE = "pattern_update"		# (update: regroove.marshal.PatternUpdate)
GENERATOR_READY = "generator_ready"		# ()


class EventEmitter:

	"""
	Named events with plain and coroutine listeners.

	Listeners run in registration order. Coroutine listeners are awaited
	together once every plain listener has been called.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.DefaultDict[str, typing.List[CallbackType]] = collections.defaultdict(list)

	def on (self, event_name: str, callback: CallbackType) -> None:

		"""Register ``callback`` for ``event_name``."""

		self._listeners[event_name].append(callback)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if callback not in self._listeners.get(event_name, []):
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)

	def listener_count (self, event_name: str) -> int:
		return len(self._listeners.get(event_name, []))

	async def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""Call every listener for ``event_name`` and await any coroutines they return."""

		pending: typing.List[typing.Awaitable[typing.Any]] = []

		for callback in list(self._listeners.get(event_name, [])):

			result = callback(*args, **kwargs)

			if inspect.isawaitable(result):
				pending.append(result)

		if pending:
			await asyncio.gather(*pending)
