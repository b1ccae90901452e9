"""Single-flight generation sessions against a rhythm model.

The :class:`Generator` owns one session at a time. ``generate()`` seeds the
model with the current pattern and, when the model finishes, exposes its
population of candidates. Candidates are organised on two axes - density
(index 0 is the busiest) and sample - and picked with
:meth:`Generator.sample_candidate`, which returns a :class:`SampleResult`
rather than raising, so callers on the clock path can skip a commit cleanly.

The model itself is anything satisfying :class:`RhythmModel`.
"""

import dataclasses
import enum
import logging
import os
import typing

import regroove.constants
import regroove.pattern


logger = logging.getLogger(__name__)


NOT_READY = "generator is not ready"
NO_SUCH_CANDIDATE = "no such candidate"


@dataclasses.dataclass
class GeneratorConfig:

	"""
	Settings handed to the model for one generation.

	Attributes:
		min_threshold: Onset threshold for the busiest density level.
		max_threshold: Onset threshold for the sparsest density level.
		num_samples: Population size across both axes.
		note_dropout: Probability of dropping each seed onset before generating.
		channels: Drum lanes per pattern.
		loop_duration: Steps per pattern.
	"""

	min_threshold: float = regroove.constants.DEFAULT_MIN_THRESHOLD
	max_threshold: float = regroove.constants.DEFAULT_MAX_THRESHOLD
	num_samples: int = regroove.constants.DEFAULT_NUM_SAMPLES
	note_dropout: float = regroove.constants.DEFAULT_NOTE_DROPOUT
	channels: int = regroove.constants.CHANNELS
	loop_duration: int = regroove.constants.LOOP_DURATION

	def to_dict (self) -> typing.Dict[str, typing.Any]:
		return dataclasses.asdict(self)


@dataclasses.dataclass (frozen=True)
class CandidatePopulation:

	"""
	The output of one generation: ``candidates[density][sample]``.

	``seed`` is the pattern the population was generated from.
	"""

	seed: regroove.pattern.PatternTriple
	candidates: typing.Tuple[typing.Tuple[regroove.pattern.PatternTriple, ...], ...]
	config: typing.Optional[GeneratorConfig] = None

	@property
	def density_axis_length (self) -> int:
		return len(self.candidates)

	@property
	def sample_axis_length (self) -> int:
		return len(self.candidates[0]) if self.candidates else 0

	def __len__ (self) -> int:
		return self.density_axis_length * self.sample_axis_length


@typing.runtime_checkable
class RhythmModel (typing.Protocol):

	"""
	Protocol for generative models the orchestrator can drive.
	"""

	async def generate (self, seed: regroove.pattern.PatternTriple, config: GeneratorConfig) -> CandidatePopulation:

		"""
		Produce a candidate population from a seed pattern.
		"""

		...

	async def save (self, population: CandidatePopulation, path: str) -> None:

		"""
		Persist a population in the model's own format.
		"""

		...

	async def load (self, path: str) -> CandidatePopulation:

		"""
		Restore a population written by :meth:`save`.
		"""

		...


class SessionState (enum.Enum):

	"""Lifecycle of the generation session."""

	IDLE = "idle"
	BUILDING = "building"
	READY = "ready"


@dataclasses.dataclass (frozen=True)
class SampleResult:

	"""
	Outcome of picking a candidate: either a pattern or the reason there is none.
	"""

	triple: typing.Optional[regroove.pattern.PatternTriple] = None
	error: typing.Optional[str] = None

	@property
	def ok (self) -> bool:
		return self.triple is not None


class Generator:

	"""
	Run at most one generation at a time and serve candidates from the result.
	"""

	def __init__ (self, model: RhythmModel, state_dir: typing.Optional[str] = None) -> None:

		"""
		Parameters:
			model: The rhythm model to drive.
			state_dir: Directory that named sessions are saved into and that
				relative load paths are resolved against.
		"""

		self.model = model
		self.state_dir = state_dir
		self._state = SessionState.IDLE
		self._population: typing.Optional[CandidatePopulation] = None

	@property
	def state (self) -> SessionState:
		return self._state

	@property
	def ready (self) -> bool:
		return self._state == SessionState.READY

	@property
	def building (self) -> bool:
		return self._state == SessionState.BUILDING

	@property
	def population (self) -> typing.Optional[CandidatePopulation]:
		"""The candidates from the last successful generation or load."""
		return self._population

	@property
	def sample_axis_length (self) -> int:
		return self._population.sample_axis_length if self._population is not None else 0

	async def generate (self, store: regroove.pattern.PatternStore, config: GeneratorConfig) -> bool:

		"""
		Build a new population seeded with the store's current pattern.

		Ignored while another build is in flight. On success the seed becomes
		the store's *source* pattern. If the model raises, the session goes
		back to the state it was in and the exception propagates.

		Returns:
			True if a new population was built, False if the call was dropped.
		"""

		if self._state == SessionState.BUILDING:
			logger.debug("Generation already in progress - request ignored")
			return False

		previous_state = self._state
		seed = store.current
		self._state = SessionState.BUILDING

		try:
			population = await self.model.generate(seed, dataclasses.replace(config))
		except Exception:
			self._state = previous_state
			raise

		self._population = population
		store.set_source(seed)
		self._state = SessionState.READY

		logger.debug(
			f"Generated {config.num_samples} rhythm sequences with note dropout: {config.note_dropout}, "
			f"threshold range: [{config.min_threshold}:{config.max_threshold}]"
		)
		logger.info("Generator is ready.")

		return True

	def sample_candidate (self, density_index: int, sample_index: int) -> SampleResult:

		"""
		Pick one candidate from the current population.

		The density index is clamped into the density axis, because the
		density control is computed against the sample count, which can
		change between generations. A sample index outside the sample axis
		is an error.
		"""

		if self._state != SessionState.READY or self._population is None:
			return SampleResult(error=NOT_READY)

		population = self._population

		if population.density_axis_length == 0 or not (0 <= sample_index < population.sample_axis_length):
			return SampleResult(error=f"{NO_SUCH_CANDIDATE}: [{density_index}, {sample_index}]")

		density = min(max(density_index, 0), population.density_axis_length - 1)

		return SampleResult(triple=population.candidates[density][sample_index])

	def _resolve (self, path: str) -> str:

		if self.state_dir is not None and not os.path.isabs(path):
			return os.path.join(self.state_dir, path)

		return path

	async def save_session (self, name: str) -> typing.Optional[str]:

		"""
		Save the current population under ``name`` in the state directory.

		Returns:
			The path written, or None if there was nothing to save or a build
			is in flight.
		"""

		if self._state != SessionState.READY or self._population is None:
			logger.debug(f"Generator state not saved ({self._state.value})")
			return None

		path = self._resolve(name)
		await self.model.save(self._population, path)
		logger.info(f"Saved generator state to {path}")

		return path

	async def load_session (self, path: str, store: regroove.pattern.PatternStore) -> bool:

		"""
		Restore a saved population and make the session ready.

		The loaded seed becomes the store's *source* pattern. Ignored while a
		build is in flight.
		"""

		if self._state == SessionState.BUILDING:
			logger.debug("Generation in progress - load ignored")
			return False

		population = await self.model.load(self._resolve(path))

		store.set_source(population.seed)
		self._population = population
		self._state = SessionState.READY

		logger.info(f"Loaded generator state from {path}")

		return True
