"""Drum lanes used by the pattern grid.

Lane order is the internal channel index of a pattern triple. Note numbers are
General MIDI Level 1 percussion assignments, used when patterns are written to
and read from MIDI files.
"""

import typing


KICK = 36
SNARE = 38
HI_HAT_CLOSED = 42
HI_HAT_OPEN = 46
LOW_TOM = 45
HIGH_MID_TOM = 48
HIGH_TOM = 50
CRASH = 49
RIDE = 51


LANES: typing.Tuple[typing.Tuple[str, int], ...] = (
	("kick", KICK),
	("snare", SNARE),
	("hi_hat_closed", HI_HAT_CLOSED),
	("hi_hat_open", HI_HAT_OPEN),
	("low_tom", LOW_TOM),
	("mid_tom", HIGH_MID_TOM),
	("high_tom", HIGH_TOM),
	("crash", CRASH),
	("ride", RIDE),
)

LANE_PITCHES: typing.Tuple[int, ...] = tuple(pitch for _, pitch in LANES)

# Reverse lookup for reading MIDI files back into lanes
PITCH_TO_LANE: typing.Dict[int, int] = {pitch: lane for lane, (_, pitch) in enumerate(LANES)}
