import pytest

import regroove.constants
import regroove.engine
import regroove.event_emitter
import regroove.pattern

import conftest


async def _commit_n (engine: regroove.engine.SyncEngine, n: int) -> list:

	"""Commit ``n`` patterns in snap mode and return every pattern that was current, oldest first."""

	await engine.generate()
	engine.set_sync_mode(int(regroove.engine.SyncMode.SNAP))
	engine.set_sync_on(1)

	seen = [engine.store.current]

	for _ in range(n):
		engine.sync.snap_phase = True
		assert await engine.on_sync_trigger() is True
		seen.append(engine.store.current)

	return seen


@pytest.mark.asyncio
async def test_cached_pattern_walks_back_through_history (engine: regroove.engine.SyncEngine, updates: list) -> None:

	seen = await _commit_n(engine, 3)
	published = len(updates)

	assert await engine.get_cached_pattern() is True
	assert engine.store.current == seen[2]

	assert await engine.get_cached_pattern() is True
	assert engine.store.current == seen[1]

	assert await engine.get_cached_pattern() is True
	assert engine.store.current == seen[0]

	assert await engine.get_cached_pattern() is False
	assert engine.store.current == seen[0]

	assert len(updates) == published + 3


@pytest.mark.asyncio
async def test_cached_pattern_with_empty_history (engine: regroove.engine.SyncEngine, updates: list) -> None:

	before = engine.store.current

	assert await engine.get_cached_pattern() is False
	assert engine.store.current is before
	assert updates == []


@pytest.mark.asyncio
async def test_recall_does_not_append_history (engine: regroove.engine.SyncEngine) -> None:

	await _commit_n(engine, 2)
	await engine.get_cached_pattern()

	assert len(engine.history) == 2


@pytest.mark.asyncio
async def test_commit_after_recall_restarts_cursor (engine: regroove.engine.SyncEngine) -> None:

	"""A commit after stepping back makes the next recall start from the newest entry."""

	await _commit_n(engine, 2)
	await engine.get_cached_pattern()
	await engine.get_cached_pattern()

	current = engine.store.current
	engine.sync.snap_phase = True
	await engine.on_sync_trigger()

	assert await engine.get_cached_pattern() is True
	assert engine.store.current == current


@pytest.mark.asyncio
async def test_clear_pattern_history (engine: regroove.engine.SyncEngine) -> None:

	await _commit_n(engine, 2)
	engine.clear_pattern_history()

	assert len(engine.history) == 0
	assert await engine.get_cached_pattern() is False


@pytest.mark.asyncio
async def test_source_pattern_returns_seed (engine: regroove.engine.SyncEngine) -> None:

	"""The source is the pattern the last generation was seeded with."""

	engine.update_cell(0, 8, 1)
	engine.update_cell(4, 6, 1)
	seed = engine.store.current

	await _commit_n(engine, 2)

	assert engine.store.current != seed
	assert await engine.get_source_pattern() is True
	assert engine.store.current == seed


@pytest.mark.asyncio
async def test_source_pattern_before_generation (engine: regroove.engine.SyncEngine, updates: list) -> None:

	assert await engine.get_source_pattern() is False
	assert updates == []


@pytest.mark.asyncio
async def test_generate_emits_ready (engine: regroove.engine.SyncEngine) -> None:

	ready = []
	engine.events.on(regroove.event_emitter.GENERATOR_READY, lambda: ready.append(True))

	assert await engine.generate() is True
	assert ready == [True]


# --- named patterns ---


@pytest.mark.asyncio
async def test_save_and_load_pattern (engine: regroove.engine.SyncEngine, storage: conftest.MemoryStorage, updates: list) -> None:

	engine.update_cell(7, 2, 1)
	saved = engine.store.current

	assert await engine.save_pattern("verse") is True
	assert storage.patterns["verse"] == saved

	engine.update_cell(7, 2, 0)

	assert await engine.load_pattern("verse.mid") is True
	assert engine.store.current == saved
	assert len(updates) == 1


@pytest.mark.asyncio
async def test_load_missing_pattern_raises (engine: regroove.engine.SyncEngine) -> None:

	before = engine.store.current

	with pytest.raises(KeyError):
		await engine.load_pattern("nothing")

	assert engine.store.current is before
	assert engine.sync.committing is False


@pytest.mark.asyncio
async def test_pattern_io_without_storage () -> None:

	import regroove.generator

	engine = regroove.engine.SyncEngine(regroove.generator.Generator(conftest.FakeModel()))

	assert await engine.save_pattern("verse") is False
	assert await engine.load_pattern("verse") is False
	assert await engine.restore_origin() is False


@pytest.mark.asyncio
async def test_restore_origin (engine: regroove.engine.SyncEngine, storage: conftest.MemoryStorage) -> None:

	"""The last committed pattern is what a restart comes back to."""

	assert await engine.restore_origin() is False

	seen = await _commit_n(engine, 1)
	engine.update_cell(0, 0, 1)

	assert await engine.restore_origin() is True
	assert engine.store.current == seen[-1]
	assert storage.patterns[regroove.constants.ORIGIN_PATTERN_NAME] == seen[-1]


@pytest.mark.asyncio
async def test_generator_state_round_trip (engine: regroove.engine.SyncEngine, model: conftest.FakeModel) -> None:

	await engine.generate()

	path = await engine.save_generator_state("session")

	assert path == "session"
	assert path in model.saved
	assert await engine.load_generator_state("session") is True
	assert engine.generator.ready


async def _auditioning (engine: regroove.engine.SyncEngine) -> regroove.pattern.PatternTriple:

	"""Start a toggle-mode audition and return the pattern it stashed."""

	await engine.generate()
	engine.set_sync_mode(int(regroove.engine.SyncMode.TOGGLE))
	engine.set_sync_on(1)

	stashed = engine.store.current
	assert await engine.on_sync_trigger() is True
	assert engine.auditioning

	return stashed


@pytest.mark.asyncio
async def test_load_during_audition_ends_it (engine: regroove.engine.SyncEngine, storage: conftest.MemoryStorage) -> None:

	"""A pattern loaded mid-audition is not thrown away by the next toggle."""

	loaded = conftest.make_triple([(9, 4), (13, 6)])
	storage.patterns["bridge"] = loaded

	stashed = await _auditioning(engine)

	assert await engine.load_pattern("bridge") is True
	assert not engine.auditioning

	# The next toggle auditions against the loaded pattern.
	assert await engine.on_sync_trigger() is True
	assert engine.store.temporary == loaded
	assert engine.store.temporary != stashed

	assert await engine.on_sync_trigger() is True
	assert engine.store.current == loaded


@pytest.mark.asyncio
async def test_source_recall_during_audition_ends_it (engine: regroove.engine.SyncEngine) -> None:

	engine.update_cell(2, 2, 1)
	seed = engine.store.current

	await _auditioning(engine)

	assert await engine.get_source_pattern() is True
	assert not engine.auditioning
	assert engine.store.current == seed


@pytest.mark.asyncio
async def test_history_recall_during_audition_ends_it (engine: regroove.engine.SyncEngine) -> None:

	await _commit_n(engine, 1)
	recalled = engine.history.recall(0)

	engine.set_sync_mode(int(regroove.engine.SyncMode.TOGGLE))
	await engine.on_sync_trigger()

	assert engine.auditioning
	assert await engine.get_cached_pattern() is True
	assert not engine.auditioning
	assert engine.store.current == recalled
