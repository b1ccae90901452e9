"""OSC bridge between the host and the sync engine.

The bridge listens on a UDP port (default 9000) for control messages and sends
pattern updates to a target host/port (default 127.0.0.1:9001).

Receive Handlers
────────────────
- ``/params/density <float>``, ``/params/minDensity``, ``/params/maxDensity``,
  ``/params/random``: generator controls, 0-1
- ``/params/samples <int>``: population size, 0-1000
- ``/params/syncMode <int>``: 0 wait, 1 snap, 2 toggle
- ``/params/syncRate <int>``: 1, 2 or 4 bars
- ``/params/velocity <int>``: velocity for hand-entered hits, 0-127
- ``/params/syncOn <int>``: 0 or 1
- ``/params/generate``: start a generation
- ``/params/sync``: sync trigger (snap and toggle modes)
- ``/wait_sync <step>``: transport step (wait mode)
- ``/update_cell <step> <lane> <value>``: edit one cell
- ``/set_active_channels <bits>``: lanes to display
- ``/save_pattern <name>``, ``/load_pattern <file>``
- ``/save_generator_state <name>``, ``/load_generator_state <path>``
- ``/get_cached_pattern``, ``/get_source_pattern``, ``/clear_pattern_history``
- ``/set_model_dir <path>``: switch to another model directory
- ``/debug <int>``: 1 for debug logging, 0 for info

Send Events
───────────
- ``/fillOnsetsMatrix``, ``/fillVelocitiesMatrix``: display grid triplets
- ``/eventSequence``: playback event triplets
- ``/penultimateSync <bool>``: the syncing flag for the update
- ``/generatorReady 1``: a generation finished

Operations that wait on the model or storage run as background tasks, started
in the order their messages arrive. Failures are logged.
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import regroove.event_emitter
import regroove.marshal
import regroove.model

if typing.TYPE_CHECKING:
	from regroove.engine import SyncEngine


logger = logging.getLogger(__name__)


class OscBridge:

	"""Async OSC server/client connecting a host to a :class:`~regroove.engine.SyncEngine`."""

	def __init__ (
		self,
		engine: "SyncEngine",
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._engine = engine
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[pythonosc.osc_server.AsyncIOOSCUDPServer] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._tasks: typing.Set[asyncio.Task] = set()
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		# Parameters
		self._dispatcher.map("/params/density", self._setter(engine.set_density))
		self._dispatcher.map("/params/minDensity", self._setter(engine.set_min_density))
		self._dispatcher.map("/params/maxDensity", self._setter(engine.set_max_density))
		self._dispatcher.map("/params/random", self._setter(engine.set_random))
		self._dispatcher.map("/params/samples", self._setter(engine.set_samples))
		self._dispatcher.map("/params/syncMode", self._setter(engine.set_sync_mode))
		self._dispatcher.map("/params/syncRate", self._setter(engine.set_sync_rate))
		self._dispatcher.map("/params/velocity", self._setter(engine.set_velocity))
		self._dispatcher.map("/params/syncOn", self._setter(engine.set_sync_on))
		self._dispatcher.map("/set_active_channels", self._setter(engine.set_active_channels))

		# Sync and generation
		self._dispatcher.map("/params/generate", self._handle_generate)
		self._dispatcher.map("/params/sync", self._handle_sync)
		self._dispatcher.map("/wait_sync", self._handle_wait_sync)
		self._dispatcher.map("/update_cell", self._handle_update_cell)

		# History and storage
		self._dispatcher.map("/get_cached_pattern", self._handle_get_cached_pattern)
		self._dispatcher.map("/get_source_pattern", self._handle_get_source_pattern)
		self._dispatcher.map("/clear_pattern_history", self._handle_clear_pattern_history)
		self._dispatcher.map("/save_pattern", self._handle_save_pattern)
		self._dispatcher.map("/load_pattern", self._handle_load_pattern)
		self._dispatcher.map("/save_generator_state", self._handle_save_generator_state)
		self._dispatcher.map("/load_generator_state", self._handle_load_generator_state)

		# Process
		self._dispatcher.map("/set_model_dir", self._handle_set_model_dir)
		self._dispatcher.map("/debug", self._handle_debug)

		engine.events.on(regroove.event_emitter.PATTERN_UPDATE, self._send_update)
		engine.events.on(regroove.event_emitter.GENERATOR_READY, self._send_generator_ready)

	@property
	def receive_port (self) -> int:

		"""The bound UDP port (differs from the requested one when that was 0)."""

		if self._transport is not None:
			return self._transport.get_extra_info("sockname")[1]

		return self._receive_port

	async def start (self) -> None:

		"""Start the OSC server and client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC listening on :{self.receive_port}, sending to {self._send_host}:{self._send_port}")

	async def stop (self) -> None:

		"""Stop the OSC server and wait for in-flight operations."""

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")

		await self.join()

	async def join (self) -> None:

		"""Wait until every background operation started so far has finished."""

		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")

	def _spawn (self, label: str, operation: typing.Awaitable[typing.Any]) -> None:

		"""Run an engine operation in the background, logging any failure."""

		async def _execute () -> None:
			try:
				await operation
			except Exception as exc:
				logger.warning(f"{label} failed: {exc}")

		task = asyncio.get_running_loop().create_task(_execute())
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)

	# Outgoing

	def _send_update (self, update: regroove.marshal.PatternUpdate) -> None:
		self.send("/fillOnsetsMatrix", *update.onsets)
		self.send("/fillVelocitiesMatrix", *update.velocities)
		self.send("/eventSequence", *update.events)
		self.send("/penultimateSync", update.syncing)

	def _send_generator_ready (self) -> None:
		self.send("/generatorReady", 1)

	# Handlers

	def _setter (self, setter: typing.Callable[[typing.Any], bool]) -> typing.Callable[..., None]:

		"""Wrap a one-argument engine setter as a dispatcher handler."""

		def _handle (address: str, *args: typing.Any) -> None:
			if not args:
				logger.warning(f"{address} needs a value")
				return
			setter(args[0])

		return _handle

	def _handle_generate (self, address: str, *args: typing.Any) -> None:
		self._spawn("Generation", self._engine.generate())

	def _handle_sync (self, address: str, *args: typing.Any) -> None:
		self._spawn("Sync", self._engine.on_sync_trigger())

	def _handle_wait_sync (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			step = int(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid wait_sync step: {args[0]}")
			return
		logger.debug(f"wait_sync: {step}")
		self._spawn("Wait sync", self._engine.on_clock_tick(step))

	def _handle_update_cell (self, address: str, *args: typing.Any) -> None:
		if len(args) < 3:
			logger.warning(f"update_cell needs step, lane and value, got {list(args)}")
			return
		self._engine.update_cell(args[0], args[1], args[2])

	def _handle_get_cached_pattern (self, address: str, *args: typing.Any) -> None:
		self._spawn("History recall", self._engine.get_cached_pattern())

	def _handle_get_source_pattern (self, address: str, *args: typing.Any) -> None:
		self._spawn("Source recall", self._engine.get_source_pattern())

	def _handle_clear_pattern_history (self, address: str, *args: typing.Any) -> None:
		self._engine.clear_pattern_history()

	def _handle_save_pattern (self, address: str, *args: typing.Any) -> None:
		if args:
			self._spawn("Save pattern", self._engine.save_pattern(str(args[0])))

	def _handle_load_pattern (self, address: str, *args: typing.Any) -> None:
		if args:
			self._spawn("Load pattern", self._engine.load_pattern(str(args[0])))

	def _handle_save_generator_state (self, address: str, *args: typing.Any) -> None:
		if args:
			self._spawn("Save generator state", self._engine.save_generator_state(str(args[0])))

	def _handle_load_generator_state (self, address: str, *args: typing.Any) -> None:
		if args:
			self._spawn("Load generator state", self._engine.load_generator_state(str(args[0])))

	def _handle_set_model_dir (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			self._engine.generator.model = regroove.model.StochasticModel.from_directory(str(args[0]))
		except regroove.model.ModelDirectoryError as e:
			logger.warning(f"Model directory not changed: {e}")
			return
		logger.info(f"Using model directory {args[0]}")

	def _handle_debug (self, address: str, *args: typing.Any) -> None:
		if not args or args[0] not in (0, 1):
			return
		level = logging.DEBUG if args[0] == 1 else logging.INFO
		logging.getLogger("regroove").setLevel(level)
		logger.info(f"Debug {'ON' if level == logging.DEBUG else 'OFF'}")
