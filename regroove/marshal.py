"""Encode pattern triples for the host.

Two encodings are produced from a triple and a channel activation mask:

- **Display grid** - flat ``(step, channel, value)`` triplets for the host's
  onset and velocity matrices, one entry per step for every active lane.
- **Playback events** - flat ``(tick, channel, velocity)`` triplets for every
  onset on an active lane, with micro-timing offsets folded into the tick.

The host numbers lanes in the opposite direction to the pattern grid, so
external lane ``e`` reads internal channel ``channels - e - 1``. Lanes are
walked from the highest external index down.

Everything here is a pure function of its arguments.
"""

import dataclasses
import typing

import regroove.constants
import regroove.pattern


ActiveChannels = typing.Tuple[bool, ...]


@dataclasses.dataclass (frozen=True)
class PatternUpdate:

	"""
	Everything the host needs after the current pattern changes.
	"""

	onsets: typing.List[float]
	velocities: typing.List[float]
	events: typing.List[float]
	syncing: bool = False


def all_channels_active (channels: int = regroove.constants.CHANNELS) -> ActiveChannels:
	return (True,) * channels


def parse_active_channels (mask: str, channels: int = regroove.constants.CHANNELS) -> ActiveChannels:

	"""
	Parse a host bit string into an activation mask indexed by external lane.

	The host prefixes the bits with one character so they are not read as a
	number. A string one longer than ``channels`` has that character removed.

	Raises:
		ValueError: If the string is the wrong length or holds anything but 0/1.
	"""

	bits = mask[1:] if len(mask) == channels + 1 else mask

	if len(bits) != channels:
		raise ValueError(f"Active channel mask must have {channels} bits, got {mask!r}")

	if set(bits) - {"0", "1"}:
		raise ValueError(f"Active channel mask must contain only 0 and 1, got {mask!r}")

	return tuple(bit == "1" for bit in bits)


def internal_channel (external: int, channels: int = regroove.constants.CHANNELS) -> int:

	"""Map a host lane number to a pattern grid column (the mapping is its own inverse)."""

	return channels - external - 1


def event_tick (step: int, offset: float, ticks_per_step: int = regroove.constants.TICKS_PER_STEP) -> float:

	"""Absolute playback tick for an onset at ``step`` with a -1/0/+1 half-step offset."""

	tick = step * ticks_per_step + offset * (ticks_per_step / 2)

	return int(tick) if float(tick).is_integer() else tick


def _active_lanes (active: ActiveChannels, channels: int) -> typing.Iterator[typing.Tuple[int, int]]:

	"""Yield ``(external, internal)`` lane pairs, highest external lane first."""

	if len(active) != channels:
		raise ValueError(f"Activation mask covers {len(active)} channels, pattern has {channels}")

	for external in range(channels - 1, -1, -1):
		if active[external]:
			yield external, internal_channel(external, channels)


def display_grid (triple: regroove.pattern.PatternTriple, active: ActiveChannels) -> typing.Tuple[typing.List[float], typing.List[float]]:

	"""
	Build the onset and velocity matrices.

	Returns:
		``(onsets, velocities)`` flat lists of ``step, lane, value`` triplets.
		Velocities are rounded to three places and are 0 wherever there is
		no onset.
	"""

	onsets_data: typing.List[float] = []
	velocities_data: typing.List[float] = []

	for external, internal in _active_lanes(active, triple.channels):

		for step in range(triple.steps):

			value = triple.onsets[step][internal]
			onsets_data.extend((step, external, value))

			velocity = round(triple.velocities[step][internal], 3) if value == 1 else 0
			velocities_data.extend((step, external, velocity))

	return onsets_data, velocities_data


def playback_events (
	triple: regroove.pattern.PatternTriple,
	active: ActiveChannels,
	ticks_per_step: int = regroove.constants.TICKS_PER_STEP
) -> typing.List[float]:

	"""
	Build the event sequence the host schedules playback from.

	Returns:
		A flat list of ``tick, channel, velocity`` triplets, where ``channel``
		is the internal grid column.
	"""

	events: typing.List[float] = []

	for _, internal in _active_lanes(active, triple.channels):

		for step in range(triple.steps):

			if triple.onsets[step][internal] != 1:
				continue

			events.extend((
				event_tick(step, triple.offsets[step][internal], ticks_per_step),
				internal,
				round(triple.velocities[step][internal], 3)
			))

	return events


def marshal (
	triple: regroove.pattern.PatternTriple,
	active: ActiveChannels,
	ticks_per_step: int = regroove.constants.TICKS_PER_STEP,
	syncing: bool = False
) -> PatternUpdate:

	"""Produce both encodings for one pattern."""

	onsets, velocities = display_grid(triple, active)

	return PatternUpdate(
		onsets = onsets,
		velocities = velocities,
		events = playback_events(triple, active, ticks_per_step),
		syncing = syncing
	)


def detail_view (sequence: typing.Sequence[float], channels: int = regroove.constants.CHANNELS) -> typing.Dict[int, typing.List[float]]:

	"""
	Regroup a display-grid sequence into one value list per lane.

	Assumes steps arrive in order within each lane, as :func:`display_grid`
	produces them. Lanes absent from the sequence map to empty lists.
	"""

	if len(sequence) % 3:
		raise ValueError("Display sequence length must be a multiple of 3")

	lanes: typing.Dict[int, typing.List[float]] = {channel: [] for channel in range(channels)}

	for i in range(0, len(sequence), 3):
		lanes[int(sequence[i + 1])].append(sequence[i + 2])

	return lanes
