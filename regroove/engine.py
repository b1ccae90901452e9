"""The transport sync engine.

:class:`SyncEngine` owns every piece of mutable performance state - the
pattern slots, the history buffer, the generation session, the sync state and
the performer's parameters - and is the only thing that changes them.

Clock ticks and sync triggers drive it through three modes:

- **wait** - count loop boundaries and commit a fresh candidate every
  ``rate`` bars.
- **snap** - commit on every second sync trigger, starting with the first.
- **toggle** - alternate between auditioning a candidate and restoring the
  pattern it replaced. Auditions never touch the history.
  A commit, recall or load during an audition ends it and the stashed
  pattern is dropped.

A commit samples a candidate, saves it as the ``origin`` pattern, pushes the
outgoing pattern onto the history, swaps the candidate in and publishes the
result. The swap comes after every call that can fail, so a failing model or
store leaves the current pattern as it was.

Only one pattern-changing operation runs at a time. Triggers and recalls that
arrive while one is in flight are dropped, not queued.
"""

import dataclasses
import enum
import logging
import math
import random
import typing

import regroove.constants
import regroove.event_emitter
import regroove.generator
import regroove.history
import regroove.marshal
import regroove.pattern


logger = logging.getLogger(__name__)


class SyncMode (enum.IntEnum):

	"""How sync triggers turn into pattern changes. Values are the host's mode ids."""

	WAIT = 0
	SNAP = 1
	TOGGLE = 2


class EngineState (enum.Enum):

	IDLE = "idle"
	ARMED = "armed"
	COMMITTING = "committing"


@typing.runtime_checkable
class PatternStorage (typing.Protocol):

	"""Protocol for the named pattern store the engine persists to."""

	async def save (self, name: str, triple: regroove.pattern.PatternTriple) -> typing.Any:
		...

	async def load (self, name: str) -> regroove.pattern.PatternTriple:
		...

	def __contains__ (self, name: object) -> bool:
		...


@dataclasses.dataclass
class SyncState:

	"""
	Sync settings and counters.

	Attributes:
		mode: The active sync mode, read once at the start of each trigger.
		enabled: Whether triggers do anything at all.
		rate: Bars between commits in wait mode.
		bar_count: Loop boundaries seen since the last wait-mode commit.
		snap_phase: True when the next snap trigger commits.
		committing: Held while a pattern-changing operation is in flight.
	"""

	mode: SyncMode = SyncMode.WAIT
	enabled: bool = False
	rate: int = min(regroove.constants.SYNC_RATE_OPTIONS)
	bar_count: int = 0
	snap_phase: bool = True
	committing: bool = False


@dataclasses.dataclass
class EngineParameters:

	"""Performer-controlled values that are not part of the generator config."""

	density_index: int = 0
	velocity_scale: float = 1.0
	active_channels: regroove.marshal.ActiveChannels = dataclasses.field(default_factory=regroove.marshal.all_channels_active)
	ticks_per_step: int = regroove.constants.TICKS_PER_STEP


def normalize (value: float, low: float, high: float) -> float:

	"""Map ``value`` in 0-1 linearly onto ``low``-``high``."""

	return (high - low) * value + low


def _number (value: typing.Any) -> typing.Optional[float]:

	"""Coerce a host argument to a float, or None if it is not a number."""

	try:
		number = float(value)
	except (TypeError, ValueError):
		return None

	if math.isnan(number):
		return None

	return number


def _round_half_up (value: float) -> int:
	return math.floor(value + 0.5)


class SyncEngine:

	"""
	Keep the current pattern in step with the transport and the generator.
	"""

	def __init__ (
		self,
		generator: regroove.generator.Generator,
		storage: typing.Optional[PatternStorage] = None,
		steps: int = regroove.constants.LOOP_DURATION,
		channels: int = regroove.constants.CHANNELS,
		ticks_per_step: int = regroove.constants.TICKS_PER_STEP,
		history_capacity: int = regroove.constants.HISTORY_CAPACITY,
		config: typing.Optional[regroove.generator.GeneratorConfig] = None,
		rng: typing.Optional[random.Random] = None
	) -> None:

		"""
		Parameters:
			generator: The generation orchestrator candidates come from.
			storage: Named pattern store for save/load and the ``origin``
				pattern. Without one, commits are not persisted.
			steps: Steps per loop.
			channels: Drum lanes per pattern.
			ticks_per_step: Playback ticks per step for the event encoding.
			history_capacity: Committed patterns kept for recall.
			config: Initial generator settings.
			rng: Random source for picking candidates.
		"""

		self.generator = generator
		self.storage = storage
		self.store = regroove.pattern.PatternStore(steps=steps, channels=channels)
		self.history = regroove.history.PatternHistory(capacity=history_capacity)
		self.sync = SyncState()
		self.params = EngineParameters(
			active_channels = regroove.marshal.all_channels_active(channels),
			ticks_per_step = ticks_per_step
		)
		self.config = config if config is not None else regroove.generator.GeneratorConfig(channels=channels, loop_duration=steps)
		self.events = regroove.event_emitter.EventEmitter()
		self.rng = rng if rng is not None else random.Random()

		# Informational only - reported to the host with each update.
		# Mutual exclusion is sync.committing.
		self.syncing: bool = False

	@property
	def steps (self) -> int:
		return self.store.shape[0]

	@property
	def channels (self) -> int:
		return self.store.shape[1]

	@property
	def state (self) -> EngineState:

		if self.sync.committing:
			return EngineState.COMMITTING

		return EngineState.ARMED if self.sync.enabled else EngineState.IDLE

	# Parameters

	def _unit (self, name: str, value: typing.Any) -> typing.Optional[float]:

		number = _number(value)

		if number is None or not 0 <= number <= 1:
			logger.warning(f"invalid {name} value {value} - must be between 0 and 1")
			return None

		return number

	def set_density (self, value: typing.Any) -> bool:

		"""Pick the density level candidates are drawn from (1.0 is the busiest)."""

		v = self._unit("density", value)

		if v is None:
			return False

		self.params.density_index = _round_half_up((1 - v) * math.sqrt(self.config.num_samples)) - 1
		logger.debug(f"Set density index to {self.params.density_index}")

		return True

	def set_min_density (self, value: typing.Any) -> bool:

		"""Set the sparsest level's onset threshold."""

		v = self._unit("minDensity", value)

		if v is None:
			return False

		self.config.max_threshold = normalize(1 - v, regroove.constants.MIN_ONSET_THRESHOLD, regroove.constants.MAX_ONSET_THRESHOLD)
		logger.debug(f"Set max onset threshold to {self.config.max_threshold}")

		return True

	def set_max_density (self, value: typing.Any) -> bool:

		"""Set the busiest level's onset threshold."""

		v = self._unit("maxDensity", value)

		if v is None:
			return False

		self.config.min_threshold = normalize(1 - v, regroove.constants.MIN_ONSET_THRESHOLD, regroove.constants.MAX_ONSET_THRESHOLD)
		logger.debug(f"Set min onset threshold to {self.config.min_threshold}")

		return True

	def set_random (self, value: typing.Any) -> bool:

		v = self._unit("random", value)

		if v is None:
			return False

		self.config.note_dropout = 1 - v
		logger.debug(f"Set note dropout to {self.config.note_dropout}")

		return True

	def set_samples (self, value: typing.Any) -> bool:

		number = _number(value)

		if number is None or not 0 <= number <= regroove.constants.MAX_NUM_SAMPLES:
			logger.warning(f"invalid numSamples value {value} - must be between 0 and {regroove.constants.MAX_NUM_SAMPLES}")
			return False

		self.config.num_samples = int(number)
		logger.debug(f"Set num samples to {self.config.num_samples}")

		return True

	def set_sync_mode (self, value: typing.Any) -> bool:

		"""Select wait (0), snap (1) or toggle (2). Applies from the next trigger."""

		number = _number(value)

		try:
			mode = SyncMode(int(number)) if number is not None and number.is_integer() else None
		except ValueError:
			mode = None

		if mode is None:
			logger.warning(f"invalid syncMode id: {value} - must be one of {[m.value for m in SyncMode]}")
			return False

		if mode is SyncMode.SNAP and self.sync.mode is not SyncMode.SNAP:
			self.sync.snap_phase = True

		self.sync.mode = mode
		logger.debug(f"Set sync mode to {mode.name.lower()}")

		return True

	def set_sync_rate (self, value: typing.Any) -> bool:

		number = _number(value)

		if number is None or number not in regroove.constants.SYNC_RATE_OPTIONS:
			logger.warning(f"invalid syncRate {value} - must be one of {list(regroove.constants.SYNC_RATE_OPTIONS)}")
			return False

		self.sync.rate = int(number)
		logger.debug(f"Set sync rate to {self.sync.rate}")

		return True

	def set_velocity (self, value: typing.Any) -> bool:

		"""Set the velocity given to hand-entered onsets, 0-127."""

		number = _number(value)

		if number is None or not 0 <= number <= regroove.constants.MAX_VELOCITY:
			logger.warning(f"invalid velocity value {value} - must be between 0 and {regroove.constants.MAX_VELOCITY}")
			return False

		self.params.velocity_scale = number / regroove.constants.MAX_VELOCITY
		logger.debug(f"Set velocity to {value}")

		return True

	def set_sync_on (self, value: typing.Any) -> bool:

		"""Enable (1) or disable (0) sync. Enabling restarts the bar count and re-arms snap."""

		number = _number(value)

		if number not in (0, 1):
			logger.warning(f"invalid syncOn value {value} - must be 0 or 1")
			return False

		enabled = bool(number)

		if enabled and not self.sync.enabled:
			self.sync.bar_count = 0
			self.sync.snap_phase = True

		self.sync.enabled = enabled
		logger.debug(f"Sync {'on' if enabled else 'off'}")

		return True

	def set_active_channels (self, mask: str) -> bool:

		"""Set which lanes are sent to the host, from a bit string in host lane order."""

		try:
			self.params.active_channels = regroove.marshal.parse_active_channels(str(mask), self.channels)
		except ValueError as e:
			logger.warning(str(e))
			return False

		logger.debug(f"Set active channels to {mask}")

		return True

	def update_cell (self, step: typing.Any, lane: typing.Any, value: typing.Any) -> bool:

		"""
		Edit one cell from the host's grid.

		``lane`` is the host's lane number, mirrored onto the pattern's
		channel. ``value`` must be 0 or 1.
		"""

		onset = _number(value)

		if onset not in (0, 1):
			logger.warning(f"invalid cell value {value} - must be 0 or 1")
			return False

		step_number = _number(step)
		lane_number = _number(lane)

		if step_number is None or lane_number is None or not step_number.is_integer() or not lane_number.is_integer():
			logger.warning(f"Invalid pattern index: [{step}, {lane}]")
			return False

		if not 0 <= lane_number < self.channels:
			logger.warning(f"Invalid pattern index: [{step}, {lane}]")
			return False

		channel = regroove.marshal.internal_channel(int(lane_number), self.channels)

		return self.store.set_cell(int(step_number), channel, int(onset), self.params.velocity_scale)

	# Output

	def marshal (self) -> regroove.marshal.PatternUpdate:

		"""Encode the current pattern for the host."""

		return regroove.marshal.marshal(
			self.store.current,
			self.params.active_channels,
			self.params.ticks_per_step,
			syncing = self.syncing
		)

	async def publish (self) -> None:

		"""Emit the current pattern, with the syncing flag raised for the duration."""

		self.syncing = True

		try:
			await self.events.emit(regroove.event_emitter.PATTERN_UPDATE, self.marshal())
		finally:
			self.syncing = False

	# Generation

	async def generate (self) -> bool:

		"""Start a generation seeded with the current pattern (dropped if one is running)."""

		built = await self.generator.generate(self.store, self.config)

		if built:
			await self.events.emit(regroove.event_emitter.GENERATOR_READY)

		return built

	async def save_generator_state (self, name: str) -> typing.Optional[str]:
		return await self.generator.save_session(name)

	async def load_generator_state (self, path: str) -> bool:
		return await self.generator.load_session(path, self.store)

	def sample_random_candidate (self) -> regroove.generator.SampleResult:

		"""Pick a candidate at the current density with a uniformly random sample index."""

		if not self.generator.ready:
			return regroove.generator.SampleResult(error=regroove.generator.NOT_READY)

		axis = self.generator.sample_axis_length
		sample_index = self.rng.randrange(axis) if axis > 0 else 0

		logger.debug(f"density index: {self.params.density_index} random index: {sample_index}")

		return self.generator.sample_candidate(self.params.density_index, sample_index)

	# Sync

	async def _exclusive (self, operation: typing.Callable[[], typing.Awaitable[bool]]) -> bool:

		"""Run a pattern-changing operation while holding the committing flag."""

		self.sync.committing = True

		try:
			return await operation()
		finally:
			self.sync.committing = False

	def _busy (self, what: str) -> bool:

		if self.sync.committing:
			logger.debug(f"{what} dropped - a pattern change is in flight")
			return True

		return False

	async def on_clock_tick (self, step: int) -> bool:

		"""
		Feed a transport step to the engine. Only wait mode listens.

		Returns:
			True if the tick committed a new pattern.
		"""

		if not self.sync.enabled or self._busy("Clock tick"):
			return False

		if self.sync.mode is not SyncMode.WAIT:
			return False

		if step % self.steps != 0:
			return False

		self.sync.bar_count += 1

		if self.sync.bar_count < self.sync.rate:
			return False

		self.sync.bar_count = 0

		return await self._exclusive(self._commit)

	async def on_sync_trigger (self) -> bool:

		"""
		Handle a sync trigger. Snap and toggle modes listen; wait mode ignores it.

		Returns:
			True if the trigger changed the current pattern.
		"""

		if not self.sync.enabled or self._busy("Sync trigger"):
			return False

		mode = self.sync.mode

		if mode is SyncMode.WAIT:
			return False

		elif mode is SyncMode.SNAP:

			if not self.sync.snap_phase:
				self.sync.snap_phase = True
				return False

			self.sync.snap_phase = False

			return await self._exclusive(self._commit)

		elif mode is SyncMode.TOGGLE:
			return await self._exclusive(self._toggle_audition)

		else:
			raise ValueError(f"Unhandled sync mode {mode!r}")

	async def _commit (self) -> bool:

		"""Replace the current pattern with a fresh candidate and record the old one."""

		result = self.sample_random_candidate()

		if not result.ok:
			logger.debug(f"Commit skipped: {result.error}")
			return False

		candidate = result.triple
		assert candidate is not None

		if self.storage is not None:
			await self.storage.save(regroove.constants.ORIGIN_PATTERN_NAME, candidate)

		self.history.append(self.store.current)
		self._install(candidate)
		await self.publish()

		return True

	async def _toggle_audition (self) -> bool:

		"""Swap a candidate in for audition, or put the stashed pattern back."""

		if self.store.has_stash:
			self.store.restore_stash()

		else:
			result = self.sample_random_candidate()

			if not result.ok:
				logger.debug(f"Audition skipped: {result.error}")
				return False

			assert result.triple is not None
			self.store.stash_and_replace(result.triple)

		await self.publish()

		return True

	@property
	def auditioning (self) -> bool:
		return self.store.has_stash

	def _install (self, triple: regroove.pattern.PatternTriple) -> None:

		"""Make ``triple`` current outside the audition flow, ending any audition."""

		self.store.replace(triple)

		if self.store.drop_stash():
			logger.debug("Audition ended - stashed pattern discarded")

	# Recall

	async def get_cached_pattern (self) -> bool:

		"""Step back one entry through the history and make it current."""

		if self._busy("History recall"):
			return False

		async def _recall () -> bool:

			entry = self.history.recall_next()

			if entry is None:
				return False

			self._install(entry)
			await self.publish()

			return True

		return await self._exclusive(_recall)

	async def get_source_pattern (self) -> bool:

		"""Return to the pattern the last generation was seeded with."""

		logger.debug("Fetching source pattern")

		if self._busy("Source recall"):
			return False

		if not self.generator.ready:
			logger.debug("No source pattern - generator is not ready")
			return False

		async def _recall () -> bool:
			self._install(self.store.source)
			await self.publish()
			return True

		return await self._exclusive(_recall)

	def clear_pattern_history (self) -> None:
		self.history.clear()

	# Storage

	def _require_storage (self) -> typing.Optional[PatternStorage]:

		if self.storage is None:
			logger.warning("No pattern storage configured")

		return self.storage

	async def save_pattern (self, name: str) -> bool:

		"""Save the current pattern under ``name``."""

		storage = self._require_storage()

		if storage is None:
			return False

		await storage.save(name, self.store.current)

		return True

	async def load_pattern (self, filename: str) -> bool:

		"""Load a stored pattern (with or without its ``.mid`` suffix) and make it current."""

		storage = self._require_storage()

		if storage is None or self._busy("Pattern load"):
			return False

		name = filename[:-len(".mid")] if filename.endswith(".mid") else filename

		async def _load () -> bool:
			triple = await storage.load(name)
			self._install(triple)
			await self.publish()
			return True

		return await self._exclusive(_load)

	async def restore_origin (self) -> bool:

		"""Load the last committed pattern from storage, if one was saved."""

		if self.storage is None or regroove.constants.ORIGIN_PATTERN_NAME not in self.storage:
			return False

		return await self.load_pattern(regroove.constants.ORIGIN_PATTERN_NAME)
