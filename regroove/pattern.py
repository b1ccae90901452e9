"""Pattern triples and the slots that hold them.

A :class:`PatternTriple` is one loop of drum content as three parallel
``(steps, channels)`` grids - onsets, velocities and micro-timing offsets.
Triples are immutable values: every change produces a new triple, so anything
holding a reference (the history buffer, a stash, an in-flight marshal) never
sees a half-written pattern.

:class:`PatternStore` holds the *current*, *source* and *temporary* slots.
"""

import dataclasses
import logging
import typing

import regroove.constants


logger = logging.getLogger(__name__)


Row = typing.Tuple[float, ...]
Grid = typing.Tuple[Row, ...]


def _freeze (grid: typing.Sequence[typing.Sequence[float]]) -> Grid:

	"""Convert any nested sequence into a tuple-of-tuples grid."""

	return tuple(tuple(row) for row in grid)


def _grid_shape (grid: Grid) -> typing.Tuple[int, int]:

	"""Return ``(steps, channels)`` for a grid, raising if its rows are ragged."""

	steps = len(grid)
	channels = len(grid[0]) if steps else 0

	for row in grid:
		if len(row) != channels:
			raise ValueError(f"Ragged grid: expected rows of {channels} channels, found {len(row)}")

	return steps, channels


@dataclasses.dataclass (frozen=True)
class PatternTriple:

	"""
	One loop of rhythmic content as three grids indexed ``[step][channel]``.

	Attributes:
		onsets: 0 or 1 - whether the lane sounds on this step.
		velocities: 0.0 to 1.0 loudness, meaningful only where the onset is 1.
		offsets: -1, 0 or +1 - early half-step, on grid, late half-step.

	Constructing a triple whose grids disagree in shape raises ``ValueError``.
	"""

	onsets: Grid
	velocities: Grid
	offsets: Grid

	def __post_init__ (self) -> None:

		# Accept lists from callers and storage, but always hold tuples.
		object.__setattr__(self, "onsets", _freeze(self.onsets))
		object.__setattr__(self, "velocities", _freeze(self.velocities))
		object.__setattr__(self, "offsets", _freeze(self.offsets))

		shape = _grid_shape(self.onsets)

		if _grid_shape(self.velocities) != shape or _grid_shape(self.offsets) != shape:
			raise ValueError(
				f"Pattern grids must share one shape: onsets {shape}, "
				f"velocities {_grid_shape(self.velocities)}, offsets {_grid_shape(self.offsets)}"
			)

	@classmethod
	def empty (cls, steps: int = regroove.constants.LOOP_DURATION, channels: int = regroove.constants.CHANNELS) -> "PatternTriple":

		"""Return a silent triple of the given shape."""

		row = (0,) * channels
		grid = (row,) * steps

		return cls(onsets=grid, velocities=tuple((0.0,) * channels for _ in range(steps)), offsets=grid)

	@property
	def shape (self) -> typing.Tuple[int, int]:

		"""``(steps, channels)`` shared by all three grids."""

		return _grid_shape(self.onsets)

	@property
	def steps (self) -> int:
		return self.shape[0]

	@property
	def channels (self) -> int:
		return self.shape[1]

	def with_cell (self, step: int, channel: int, onset: float, velocity: float, offset: float = 0) -> "PatternTriple":

		"""
		Return a new triple with one cell changed in all three grids.

		Rows other than ``step`` are shared with this triple, which is safe
		because rows are tuples.
		"""

		steps, channels = self.shape

		if not (0 <= step < steps and 0 <= channel < channels):
			raise IndexError(f"Cell [{step}, {channel}] outside pattern shape {self.shape}")

		def _replace (grid: Grid, value: float) -> Grid:
			row = list(grid[step])
			row[channel] = value
			return grid[:step] + (tuple(row),) + grid[step + 1:]

		return PatternTriple(
			onsets = _replace(self.onsets, onset),
			velocities = _replace(self.velocities, velocity),
			offsets = _replace(self.offsets, offset)
		)

	def hits (self) -> typing.Iterator[typing.Tuple[int, int]]:

		"""Yield ``(step, channel)`` for every cell with an onset."""

		for step, row in enumerate(self.onsets):
			for channel, value in enumerate(row):
				if value == 1:
					yield step, channel

	def to_dict (self) -> typing.Dict[str, typing.List[typing.List[float]]]:

		"""Plain nested lists, for JSON session files."""

		return {
			"onsets": [list(row) for row in self.onsets],
			"velocities": [list(row) for row in self.velocities],
			"offsets": [list(row) for row in self.offsets],
		}

	@classmethod
	def from_dict (cls, data: typing.Dict[str, typing.Any]) -> "PatternTriple":

		"""Rebuild a triple from :meth:`to_dict` output."""

		return cls(onsets=data["onsets"], velocities=data["velocities"], offsets=data["offsets"])


class PatternStore:

	"""
	The current, source and temporary pattern slots.

	*current* is what plays now. *source* is the seed of the last completed
	generation, kept so a performer can return to it. *temporary* holds the
	previous current pattern while a candidate is being auditioned.

	Every write replaces a whole triple.
	"""

	def __init__ (
		self,
		steps: int = regroove.constants.LOOP_DURATION,
		channels: int = regroove.constants.CHANNELS,
		initial: typing.Optional[PatternTriple] = None
	) -> None:

		"""Create the slots, all silent unless an initial pattern is given."""

		self._shape = (steps, channels)

		empty = PatternTriple.empty(steps, channels)

		self._current: PatternTriple = empty
		self._source: PatternTriple = empty
		self._temporary: typing.Optional[PatternTriple] = None

		if initial is not None:
			self.replace(initial)

	@property
	def shape (self) -> typing.Tuple[int, int]:
		return self._shape

	@property
	def current (self) -> PatternTriple:
		"""The pattern that is playing now."""
		return self._current

	@property
	def source (self) -> PatternTriple:
		"""The seed of the last completed generation."""
		return self._source

	@property
	def temporary (self) -> typing.Optional[PatternTriple]:
		"""The stashed pattern while auditioning, otherwise ``None``."""
		return self._temporary

	@property
	def has_stash (self) -> bool:
		return self._temporary is not None

	def _check_shape (self, triple: PatternTriple) -> None:

		if triple.shape != self._shape:
			raise ValueError(f"Pattern shape {triple.shape} does not match store shape {self._shape}")

	def set_cell (self, step: int, channel: int, onset_value: int, velocity_scale: float) -> bool:

		"""
		Edit one cell of the current pattern.

		The velocity is derived as ``onset_value * velocity_scale`` and the
		offset is reset to on-grid. Out-of-range indices are logged and
		ignored.

		Returns:
			True if the cell was written.
		"""

		steps, channels = self._shape

		if not (0 <= step < steps and 0 <= channel < channels):
			logger.warning(f"Invalid pattern index: [{step}, {channel}]")
			return False

		self._current = self._current.with_cell(
			step = step,
			channel = channel,
			onset = onset_value,
			velocity = onset_value * velocity_scale,
			offset = 0
		)

		return True

	def replace (self, triple: PatternTriple) -> None:

		"""Swap in a new current pattern."""

		self._check_shape(triple)
		self._current = triple

	def set_source (self, triple: PatternTriple) -> None:

		"""Record the seed a generation was built from."""

		self._check_shape(triple)
		self._source = triple

	def stash_and_replace (self, triple: PatternTriple) -> None:

		"""Move current into the temporary slot and install ``triple``."""

		self._check_shape(triple)
		self._temporary = self._current
		self._current = triple

	def restore_stash (self) -> bool:

		"""
		Put the stashed pattern back as current.

		Returns:
			False (and does nothing) if no stash is active.
		"""

		if self._temporary is None:
			return False

		self._current = self._temporary
		self._temporary = None

		return True

	def drop_stash (self) -> bool:

		"""Forget the stashed pattern without restoring it. Returns True if one was held."""

		held = self._temporary is not None
		self._temporary = None

		return held
