import asyncio
import logging
import typing

import pytest
import pytest_asyncio

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import regroove.engine
import regroove.osc

import conftest


class Receiver:

	"""A UDP OSC server standing in for the host, recording everything it is sent."""

	def __init__ (self) -> None:

		self.messages: typing.List[typing.Tuple[str, tuple]] = []
		self.port = 0
		self._transport: typing.Optional[asyncio.BaseTransport] = None

	async def start (self) -> None:

		dispatcher = pythonosc.dispatcher.Dispatcher()
		dispatcher.set_default_handler(self._record)

		server = pythonosc.osc_server.AsyncIOOSCUDPServer(("127.0.0.1", 0), dispatcher, asyncio.get_running_loop())
		self._transport, _ = await server.create_serve_endpoint()
		self.port = self._transport.get_extra_info("sockname")[1]

	def stop (self) -> None:
		if self._transport is not None:
			self._transport.close()

	def _record (self, address: str, *args: typing.Any) -> None:
		self.messages.append((address, args))

	def addresses (self) -> typing.List[str]:
		return [address for address, _ in self.messages]

	def last (self, address: str) -> tuple:
		return [args for a, args in self.messages if a == address][-1]


async def _settle (bridge: regroove.osc.OscBridge) -> None:

	"""Let datagrams arrive and background operations finish."""

	await asyncio.sleep(0.1)
	await bridge.join()
	await asyncio.sleep(0.05)


@pytest_asyncio.fixture
async def receiver () -> typing.AsyncIterator[Receiver]:

	receiver = Receiver()
	await receiver.start()

	yield receiver

	receiver.stop()


@pytest_asyncio.fixture
async def bridge (engine: regroove.engine.SyncEngine, receiver: Receiver) -> typing.AsyncIterator[regroove.osc.OscBridge]:

	bridge = regroove.osc.OscBridge(engine, receive_port=0, send_port=receiver.port)
	await bridge.start()

	yield bridge

	await bridge.stop()


@pytest.fixture
def client (bridge: regroove.osc.OscBridge) -> pythonosc.udp_client.SimpleUDPClient:
	return pythonosc.udp_client.SimpleUDPClient("127.0.0.1", bridge.receive_port)


@pytest.mark.asyncio
async def test_parameter_messages (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient) -> None:

	"""Parameter addresses reach the matching engine setters."""

	client.send_message("/params/density", 0.5)
	client.send_message("/params/syncRate", 4)
	client.send_message("/params/syncMode", 2)
	client.send_message("/params/velocity", 127)
	client.send_message("/set_active_channels", "x111111110")

	await _settle(bridge)

	assert engine.params.density_index == 9
	assert engine.sync.rate == 4
	assert engine.sync.mode is regroove.engine.SyncMode.TOGGLE
	assert engine.params.velocity_scale == pytest.approx(1.0)
	assert engine.params.active_channels == (True,) * 8 + (False,)


@pytest.mark.asyncio
async def test_invalid_parameter_is_ignored (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient) -> None:

	client.send_message("/params/syncRate", 3)
	client.send_message("/params/samples", [])

	await _settle(bridge)

	assert engine.sync.rate == 1


@pytest.mark.asyncio
async def test_update_cell_message (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient) -> None:

	client.send_message("/update_cell", [2, 0, 1])

	await _settle(bridge)

	assert list(engine.store.current.hits()) == [(2, 8)]


@pytest.mark.asyncio
async def test_generate_then_snap_sends_update (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient, receiver: Receiver) -> None:

	"""A snap commit sends both matrices, the event sequence and the syncing flag."""

	client.send_message("/params/generate", [])
	await _settle(bridge)

	assert engine.generator.ready
	assert "/generatorReady" in receiver.addresses()

	client.send_message("/params/syncMode", 1)
	client.send_message("/params/syncOn", 1)
	client.send_message("/params/sync", [])
	await _settle(bridge)

	assert len(engine.history) == 1

	onsets = receiver.last("/fillOnsetsMatrix")
	velocities = receiver.last("/fillVelocitiesMatrix")

	assert len(onsets) == 3 * 16 * 9
	assert len(velocities) == len(onsets)
	assert len(receiver.last("/eventSequence")) == 3
	assert receiver.last("/penultimateSync") == (True,)


@pytest.mark.asyncio
async def test_wait_sync_commits_on_boundary (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient) -> None:

	await engine.generate()
	engine.set_sync_on(1)

	client.send_message("/wait_sync", 3)
	await _settle(bridge)

	assert len(engine.history) == 0

	client.send_message("/wait_sync", 16)
	await _settle(bridge)

	assert len(engine.history) == 1


@pytest.mark.asyncio
async def test_failed_load_is_logged (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient, caplog: pytest.LogCaptureFixture) -> None:

	"""A failing background operation logs a warning and the bridge keeps serving."""

	with caplog.at_level(logging.WARNING, logger="regroove.osc"):
		client.send_message("/load_pattern", "missing.mid")
		await _settle(bridge)

	assert "Load pattern failed" in caplog.text

	client.send_message("/params/syncRate", 2)
	await _settle(bridge)

	assert engine.sync.rate == 2


@pytest.mark.asyncio
async def test_save_and_recall_messages (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient, storage: conftest.MemoryStorage) -> None:

	engine.update_cell(0, 8, 1)
	saved = engine.store.current

	client.send_message("/save_pattern", "intro")
	await _settle(bridge)

	assert storage.patterns["intro"] == saved

	engine.update_cell(0, 8, 0)
	client.send_message("/load_pattern", "intro.mid")
	await _settle(bridge)

	assert engine.store.current == saved

	client.send_message("/params/generate", [])
	await _settle(bridge)

	engine.update_cell(5, 5, 1)
	client.send_message("/get_source_pattern", [])
	await _settle(bridge)

	assert engine.store.current == saved


@pytest.mark.asyncio
async def test_set_model_dir_rejects_bad_path (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient, tmp_path) -> None:

	model = engine.generator.model

	client.send_message("/set_model_dir", str(tmp_path / "missing"))
	await _settle(bridge)

	assert engine.generator.model is model


@pytest.mark.asyncio
async def test_set_model_dir (engine: regroove.engine.SyncEngine, bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient, tmp_path) -> None:

	import regroove.model

	(tmp_path / regroove.model.MODEL_FILENAME).write_text("seed_weight: 0.2\n")

	client.send_message("/set_model_dir", str(tmp_path))
	await _settle(bridge)

	assert isinstance(engine.generator.model, regroove.model.StochasticModel)
	assert engine.generator.model.parameters.seed_weight == 0.2


@pytest.mark.asyncio
async def test_debug_message (bridge: regroove.osc.OscBridge, client: pythonosc.udp_client.SimpleUDPClient) -> None:

	package_logger = logging.getLogger("regroove")
	level = package_logger.level

	try:
		client.send_message("/debug", 1)
		await _settle(bridge)

		assert package_logger.level == logging.DEBUG

		client.send_message("/debug", 0)
		await _settle(bridge)

		assert package_logger.level == logging.INFO
	finally:
		package_logger.setLevel(level)
