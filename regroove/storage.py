"""Named pattern storage as standard MIDI files.

Each pattern is written to ``<name>.mid`` with one drum note per onset, so
saved patterns open in any DAW. A YAML index next to the files records what
has been saved. Files dropped into the directory by hand can be loaded by name
even if the index does not list them.

Micro-timing offsets are written as a quarter-step shift. Half a step would
make "step 3 late" and "step 4 early" land on the same tick; a quarter keeps
every cell distinct when read back. Hits shifted before the start of the loop
wrap to its end.

MIDI has no silent note-on, so velocities are written as at least 1. An onset
saved with velocity 0 keeps its note and reads back at 1/127 (0.008).
"""

import asyncio
import logging
import os
import typing

import mido
import yaml

import regroove.constants
import regroove.constants.drums
import regroove.pattern


logger = logging.getLogger(__name__)


INDEX_FILENAME = "index.yaml"
MIDI_EXTENSION = ".mid"
DRUM_CHANNEL = 9
STEPS_PER_BEAT = 4


class MidiPatternStore:

	"""Save and load pattern triples by name in a directory of MIDI files."""

	def __init__ (
		self,
		root: str,
		steps: int = regroove.constants.LOOP_DURATION,
		channels: int = regroove.constants.CHANNELS,
		ticks_per_step: int = regroove.constants.TICKS_PER_STEP
	) -> None:

		if channels > len(regroove.constants.drums.LANE_PITCHES):
			raise ValueError(f"Only {len(regroove.constants.drums.LANE_PITCHES)} drum lanes have MIDI notes assigned")

		if ticks_per_step < 4:
			raise ValueError("ticks_per_step must be at least 4")

		self.root = root
		self.steps = steps
		self.channels = channels
		self.ticks_per_step = ticks_per_step
		self._index: typing.Dict[str, str] = self._read_index()

	@property
	def index_path (self) -> str:
		return os.path.join(self.root, INDEX_FILENAME)

	def _read_index (self) -> typing.Dict[str, str]:

		if not os.path.exists(self.index_path):
			return {}

		with open(self.index_path, "r") as f:
			data = yaml.safe_load(f) or {}

		return dict(data.get("patterns", {}))

	def _write_index (self) -> None:

		with open(self.index_path, "w") as f:
			yaml.safe_dump({"patterns": self._index}, f, default_flow_style=False)

	def names (self) -> typing.List[str]:

		"""Names of every indexed pattern, sorted."""

		return sorted(self._index)

	def __contains__ (self, name: object) -> bool:
		return isinstance(name, str) and (name in self._index or os.path.exists(self.path_for(name)))

	def path_for (self, name: str) -> str:

		if not name or os.sep in name or (os.altsep and os.altsep in name) or name in (".", ".."):
			raise ValueError(f"Invalid pattern name: {name!r}")

		return os.path.join(self.root, self._index.get(name, name + MIDI_EXTENSION))

	async def save (self, name: str, triple: regroove.pattern.PatternTriple) -> str:

		"""
		Write ``triple`` to ``<name>.mid`` and record it in the index.

		Returns:
			The path written.
		"""

		if triple.shape != (self.steps, self.channels):
			raise ValueError(f"Pattern shape {triple.shape} does not match store shape {(self.steps, self.channels)}")

		path = self.path_for(name)
		mid = self.to_midi(triple, name)

		def _write () -> None:
			os.makedirs(self.root, exist_ok=True)
			mid.save(path)
			self._index[name] = os.path.basename(path)
			self._write_index()

		await asyncio.to_thread(_write)
		logger.debug(f"Saved pattern '{name}' to {path}")

		return path

	async def load (self, name: str) -> regroove.pattern.PatternTriple:

		"""
		Read a named pattern.

		Raises:
			KeyError: If no file exists for ``name``.
		"""

		path = self.path_for(name)

		if not os.path.exists(path):
			raise KeyError(f"No stored pattern named {name!r}")

		mid = await asyncio.to_thread(mido.MidiFile, path)
		logger.debug(f"Loaded pattern '{name}' from {path}")

		return self.from_midi(mid)

	def to_midi (self, triple: regroove.pattern.PatternTriple, name: str = "") -> mido.MidiFile:

		"""Render a triple as a one-track MIDI file, one bar long."""

		tps = self.ticks_per_step
		shift = tps // 4
		loop_ticks = triple.steps * tps
		note_length = tps // 4

		timeline: typing.List[typing.Tuple[int, int, mido.Message]] = []

		for step, channel in triple.hits():

			pitch = regroove.constants.drums.LANE_PITCHES[channel]
			velocity = max(1, min(regroove.constants.MAX_VELOCITY, round(triple.velocities[step][channel] * regroove.constants.MAX_VELOCITY)))
			start = (step * tps + int(triple.offsets[step][channel]) * shift) % loop_ticks

			# note_off sorts before note_on at the same tick
			timeline.append((start, 1, mido.Message("note_on", channel=DRUM_CHANNEL, note=pitch, velocity=velocity)))
			timeline.append((start + note_length, 0, mido.Message("note_off", channel=DRUM_CHANNEL, note=pitch, velocity=0)))

		timeline.sort(key=lambda item: (item[0], item[1]))

		mid = mido.MidiFile(type=0)
		mid.ticks_per_beat = tps * STEPS_PER_BEAT
		track = mido.MidiTrack()
		mid.tracks.append(track)

		track.append(mido.MetaMessage("track_name", name=name, time=0))
		track.append(mido.MetaMessage("time_signature", numerator=4, denominator=4, time=0))

		last_tick = 0

		for tick, _, message in timeline:
			track.append(message.copy(time=tick - last_tick))
			last_tick = tick

		track.append(mido.MetaMessage("end_of_track", time=max(0, loop_ticks - last_tick)))

		return mid

	def from_midi (self, mid: mido.MidiFile) -> regroove.pattern.PatternTriple:

		"""
		Read a MIDI file back into a triple.

		Notes on pitches outside the drum lanes are skipped. Files written at
		another resolution are rescaled to this store's ticks per step.
		"""

		tps = self.ticks_per_step
		scale = (tps * STEPS_PER_BEAT) / mid.ticks_per_beat
		tolerance = tps / 8

		onsets = [[0] * self.channels for _ in range(self.steps)]
		velocities = [[0.0] * self.channels for _ in range(self.steps)]
		offsets = [[0] * self.channels for _ in range(self.steps)]

		for track in mid.tracks:

			tick = 0

			for message in track:

				tick += message.time

				if message.type != "note_on" or message.velocity == 0:
					continue

				channel = regroove.constants.drums.PITCH_TO_LANE.get(message.note)

				if channel is None or channel >= self.channels:
					logger.debug(f"Skipping note {message.note} - not a drum lane")
					continue

				position = tick * scale
				nearest = round(position / tps)
				remainder = position - nearest * tps
				step = nearest % self.steps

				if abs(remainder) < tolerance:
					offset = 0
				else:
					offset = 1 if remainder > 0 else -1

				onsets[step][channel] = 1
				velocities[step][channel] = round(message.velocity / regroove.constants.MAX_VELOCITY, 3)
				offsets[step][channel] = offset

		return regroove.pattern.PatternTriple(onsets=onsets, velocities=velocities, offsets=offsets)
