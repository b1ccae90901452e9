import pytest

import regroove.event_emitter


@pytest.mark.asyncio
async def test_plain_and_coroutine_listeners () -> None:

	"""Both kinds of listener run, in registration order for plain ones."""

	emitter = regroove.event_emitter.EventEmitter()
	calls = []

	async def _async_listener (value: int) -> None:
		calls.append(("async", value))

	emitter.on("tick", lambda value: calls.append(("first", value)))
	emitter.on("tick", _async_listener)
	emitter.on("tick", lambda value: calls.append(("second", value)))

	await emitter.emit("tick", 3)

	assert calls == [("first", 3), ("second", 3), ("async", 3)]


@pytest.mark.asyncio
async def test_emit_without_listeners () -> None:

	emitter = regroove.event_emitter.EventEmitter()

	await emitter.emit("nothing")

	assert emitter.listener_count("nothing") == 0


@pytest.mark.asyncio
async def test_off_removes_listener () -> None:

	emitter = regroove.event_emitter.EventEmitter()
	calls = []
	listener = calls.append

	emitter.on("tick", listener)
	emitter.off("tick", listener)

	await emitter.emit("tick", 1)

	assert calls == []
	assert emitter.listener_count("tick") == 0


def test_off_unknown_listener () -> None:

	emitter = regroove.event_emitter.EventEmitter()

	with pytest.raises(ValueError):
		emitter.off("tick", print)


@pytest.mark.asyncio
async def test_listener_errors_propagate () -> None:

	emitter = regroove.event_emitter.EventEmitter()

	def _broken () -> None:
		raise RuntimeError("listener failed")

	emitter.on("tick", _broken)

	with pytest.raises(RuntimeError):
		await emitter.emit("tick")
