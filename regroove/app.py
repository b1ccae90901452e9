"""Process bootstrap: directories, model, engine and the OSC run loop."""

import asyncio
import logging
import os
import random
import signal
import typing

import regroove.config
import regroove.engine
import regroove.generator
import regroove.model
import regroove.osc
import regroove.storage


logger = logging.getLogger(__name__)


DATA_SUBDIRS = ("factory", "user", "state")


def prepare_directories (data_dir: str) -> typing.Dict[str, str]:

	"""
	Create the data directories if needed.

	Returns:
		Paths keyed by ``factory``, ``user`` and ``state``.
	"""

	paths = {name: os.path.join(data_dir, name) for name in DATA_SUBDIRS}

	for path in paths.values():
		if not os.path.isdir(path):
			logger.info(f"Creating directory: {path}")
			os.makedirs(path)

	return paths


def build_model (settings: regroove.config.Settings, rng: typing.Optional[random.Random] = None) -> regroove.model.StochasticModel:

	"""
	Build the rhythm model.

	Raises:
		regroove.model.ModelDirectoryError: If a model directory is configured
			but is not valid. This aborts startup.
	"""

	if settings.model_dir is None:
		logger.info("No model directory configured - using built-in model parameters")
		return regroove.model.StochasticModel(rng=rng)

	model = regroove.model.StochasticModel.from_directory(settings.model_dir, rng=rng)
	logger.info(f"Loaded model parameters from {settings.model_dir}")

	return model


def build_engine (settings: regroove.config.Settings) -> regroove.engine.SyncEngine:

	"""Create directories, the model, the generator, storage and the engine from settings."""

	paths = prepare_directories(settings.data_dir)

	# Independent streams so the model thread and the engine never share an RNG.
	if settings.seed is not None:
		master = random.Random(settings.seed)
		model_rng = random.Random(master.randint(0, 2 ** 63))
		engine_rng = random.Random(master.randint(0, 2 ** 63))
	else:
		model_rng = random.Random()
		engine_rng = random.Random()

	generator = regroove.generator.Generator(build_model(settings, rng=model_rng), state_dir=paths["state"])

	config = regroove.generator.GeneratorConfig(
		min_threshold = settings.min_threshold,
		max_threshold = settings.max_threshold,
		num_samples = settings.num_samples,
		note_dropout = settings.note_dropout
	)

	storage = regroove.storage.MidiPatternStore(paths["user"], ticks_per_step=settings.ticks_per_step)

	return regroove.engine.SyncEngine(
		generator = generator,
		storage = storage,
		ticks_per_step = settings.ticks_per_step,
		history_capacity = settings.history_capacity,
		config = config,
		rng = engine_rng
	)


async def run (settings: regroove.config.Settings) -> None:

	"""
	Serve the engine over OSC until SIGINT or SIGTERM.
	"""

	engine = build_engine(settings)

	bridge = regroove.osc.OscBridge(
		engine,
		receive_port = settings.receive_port,
		send_port = settings.send_port,
		send_host = settings.send_host
	)

	await bridge.start()

	try:
		if await engine.restore_origin():
			logger.info("Restored the origin pattern")
	except Exception as exc:
		logger.warning(f"Could not restore the origin pattern: {exc}")

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:

		"""
		Signal handler to request a clean shutdown.
		"""

		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	logger.info("Regroove running. Press Ctrl+C to stop.")

	await stop_event.wait()
	await bridge.stop()
