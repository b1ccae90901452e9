import asyncio
import typing

import pytest

import regroove.constants
import regroove.engine
import regroove.generator
import regroove.pattern


def make_triple (
	hits: typing.Iterable[typing.Tuple[int, int]] = (),
	velocity: float = 1.0,
	offset: int = 0,
	steps: int = regroove.constants.LOOP_DURATION,
	channels: int = regroove.constants.CHANNELS
) -> regroove.pattern.PatternTriple:

	"""Build a triple with onsets at the given ``(step, channel)`` cells."""

	triple = regroove.pattern.PatternTriple.empty(steps, channels)

	for step, channel in hits:
		triple = triple.with_cell(step, channel, onset=1, velocity=velocity, offset=offset)

	return triple


class FakeModel:

	"""
	Rhythm model stub that returns a fixed grid of distinct candidates.

	Candidate ``[d][s]`` has a single onset at step ``d``, channel ``s``, so
	tests can tell exactly which one was picked. Set ``gate`` to an unset
	``asyncio.Event`` to hold ``generate()`` until the test releases it.
	"""

	def __init__ (self, density_axis: int = 4, sample_axis: int = 3) -> None:

		self.density_axis = density_axis
		self.sample_axis = sample_axis
		self.gate: typing.Optional[asyncio.Event] = None
		self.fail: typing.Optional[Exception] = None
		self.calls: typing.List[typing.Tuple[regroove.pattern.PatternTriple, regroove.generator.GeneratorConfig]] = []
		self.saved: typing.Dict[str, regroove.generator.CandidatePopulation] = {}

	async def generate (self, seed: regroove.pattern.PatternTriple, config: regroove.generator.GeneratorConfig) -> regroove.generator.CandidatePopulation:

		self.calls.append((seed, config))

		if self.gate is not None:
			await self.gate.wait()

		if self.fail is not None:
			raise self.fail

		candidates = tuple(
			tuple(make_triple([(d, s)], velocity=0.5) for s in range(self.sample_axis))
			for d in range(self.density_axis)
		)

		return regroove.generator.CandidatePopulation(seed=seed, candidates=candidates, config=config)

	async def save (self, population: regroove.generator.CandidatePopulation, path: str) -> None:
		self.saved[path] = population

	async def load (self, path: str) -> regroove.generator.CandidatePopulation:
		return self.saved[path]


class MemoryStorage:

	"""In-memory pattern storage. Set ``gate`` to hold ``save()`` until released."""

	def __init__ (self) -> None:

		self.patterns: typing.Dict[str, regroove.pattern.PatternTriple] = {}
		self.gate: typing.Optional[asyncio.Event] = None
		self.fail: typing.Optional[Exception] = None
		self.save_count = 0

	async def save (self, name: str, triple: regroove.pattern.PatternTriple) -> None:

		self.save_count += 1

		if self.gate is not None:
			await self.gate.wait()

		if self.fail is not None:
			raise self.fail

		self.patterns[name] = triple

	async def load (self, name: str) -> regroove.pattern.PatternTriple:
		return self.patterns[name]

	def __contains__ (self, name: object) -> bool:
		return name in self.patterns


@pytest.fixture
def model () -> FakeModel:
	return FakeModel()


@pytest.fixture
def storage () -> MemoryStorage:
	return MemoryStorage()


@pytest.fixture
def engine (model: FakeModel, storage: MemoryStorage) -> regroove.engine.SyncEngine:

	"""An engine over the fake model and in-memory storage, with a seeded RNG."""

	import random

	generator = regroove.generator.Generator(model)

	return regroove.engine.SyncEngine(generator, storage=storage, rng=random.Random(1))


@pytest.fixture
def updates (engine: regroove.engine.SyncEngine) -> typing.List[typing.Any]:

	"""Collect every pattern update the engine emits."""

	import regroove.event_emitter

	received: typing.List[typing.Any] = []
	engine.events.on(regroove.event_emitter.PATTERN_UPDATE, received.append)

	return received
