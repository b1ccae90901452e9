"""Constants for regroove.

- ``regroove.constants`` - Grid dimensions, generator defaults and sync options
- ``regroove.constants.drums`` - The nine drum lanes and their GM note numbers

Grid dimensions match the models the generator is built around: a one-bar loop
of sixteen sixteenth-note steps across nine drum lanes.
"""

# Pattern grid

LOOP_DURATION = 16				# steps per loop (one bar of sixteenths)
CHANNELS = 9					# drum lanes

# Playback resolution

TICKS_PER_STEP = 32

# Onset threshold bounds the density controls are normalised into

MIN_ONSET_THRESHOLD = 0.1
MAX_ONSET_THRESHOLD = 0.9

# Generator defaults

DEFAULT_NUM_SAMPLES = 400
DEFAULT_MIN_THRESHOLD = 0.3
DEFAULT_MAX_THRESHOLD = 0.7
DEFAULT_NOTE_DROPOUT = 0.5
MAX_NUM_SAMPLES = 1000

# Sync

SYNC_RATE_OPTIONS = (1, 2, 4)
HISTORY_CAPACITY = 100
ORIGIN_PATTERN_NAME = "origin"

# MIDI velocity range used by the host

MAX_VELOCITY = 127
