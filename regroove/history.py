"""Bounded log of committed patterns, with a cursor for stepping back through it."""

import collections
import logging
import typing

import regroove.constants
import regroove.pattern


logger = logging.getLogger(__name__)


class PatternHistory:

	"""
	A bounded log of committed patterns, newest last.

	Appending past capacity evicts the oldest entry. Entries are immutable
	:class:`~regroove.pattern.PatternTriple` values, so nothing stored here can
	change after the fact.

	A recall cursor supports stepping back through the log one entry per
	request. It points at the most recent entry after every append or clear.
	"""

	def __init__ (self, capacity: int = regroove.constants.HISTORY_CAPACITY) -> None:

		"""Create an empty history holding at most ``capacity`` entries."""

		if capacity <= 0:
			raise ValueError("History capacity must be positive")

		self.capacity = capacity
		self._entries: typing.Deque[regroove.pattern.PatternTriple] = collections.deque(maxlen=capacity)
		self.cursor: int = 0

	def __len__ (self) -> int:
		return len(self._entries)

	def __iter__ (self) -> typing.Iterator[regroove.pattern.PatternTriple]:

		"""Iterate oldest to newest."""

		return iter(self._entries)

	def append (self, triple: regroove.pattern.PatternTriple) -> None:

		"""Store a snapshot and reset the recall cursor."""

		self._entries.append(triple)
		self.cursor = 0

	def recall (self, offset_from_tail: int) -> typing.Optional[regroove.pattern.PatternTriple]:

		"""
		Return the entry ``offset_from_tail`` places back from the newest.

		Offset 0 is the most recent entry. Returns ``None`` when the offset
		is outside the log.
		"""

		if offset_from_tail < 0 or offset_from_tail >= len(self._entries):
			return None

		return self._entries[-1 - offset_from_tail]

	def recall_next (self) -> typing.Optional[regroove.pattern.PatternTriple]:

		"""Recall the entry at the cursor, then move the cursor one step back in time."""

		entry = self.recall(self.cursor)

		if entry is None:
			logger.debug(f"Pattern history index {self.cursor} >= history length {len(self._entries)}")
			return None

		self.cursor += 1

		return entry

	def clear (self) -> None:

		"""Drop every entry and reset the cursor."""

		self._entries.clear()
		self.cursor = 0
