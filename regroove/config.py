"""Settings for a regroove process, loaded from YAML.

Every key is optional. A minimal ``config.yaml``::

    osc:
      receive_port: 9000
      send_port: 9001
    paths:
      data_dir: .data
      model_dir: models/v2
    generator:
      num_samples: 400
"""

import dataclasses
import logging
import os
import typing

import yaml

import regroove.constants


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Settings:

	"""
	Process settings.

	Attributes:
		receive_port: UDP port for incoming OSC.
		send_port: UDP port the host listens on.
		send_host: Host address updates are sent to.
		data_dir: Root of the ``factory``, ``user`` and ``state`` directories.
		model_dir: Model directory, or None for the built-in parameters.
		num_samples: Initial population size.
		min_threshold: Initial onset threshold for the busiest density level.
		max_threshold: Initial onset threshold for the sparsest density level.
		note_dropout: Initial seed dropout.
		ticks_per_step: Playback ticks per step.
		history_capacity: Committed patterns kept for recall.
		seed: Seed for every random decision, for repeatable sessions.
		debug: Start with debug logging.
	"""

	receive_port: int = 9000
	send_port: int = 9001
	send_host: str = "127.0.0.1"
	data_dir: str = ".data"
	model_dir: typing.Optional[str] = None
	num_samples: int = regroove.constants.DEFAULT_NUM_SAMPLES
	min_threshold: float = regroove.constants.DEFAULT_MIN_THRESHOLD
	max_threshold: float = regroove.constants.DEFAULT_MAX_THRESHOLD
	note_dropout: float = regroove.constants.DEFAULT_NOTE_DROPOUT
	ticks_per_step: int = regroove.constants.TICKS_PER_STEP
	history_capacity: int = regroove.constants.HISTORY_CAPACITY
	seed: typing.Optional[int] = None
	debug: bool = False


# YAML section -> keys it may hold
SECTIONS: typing.Dict[str, typing.Tuple[str, ...]] = {
	"osc": ("receive_port", "send_port", "send_host"),
	"paths": ("data_dir", "model_dir"),
	"generator": ("num_samples", "min_threshold", "max_threshold", "note_dropout"),
	"engine": ("ticks_per_step", "history_capacity", "seed"),
}


def settings_from_dict (data: typing.Dict[str, typing.Any]) -> Settings:

	"""Build settings from a parsed config mapping, warning about keys it does not know."""

	values: typing.Dict[str, typing.Any] = {}

	for section, content in data.items():

		if section == "debug":
			values["debug"] = bool(content)
			continue

		if section not in SECTIONS:
			logger.warning(f"Ignoring unknown config section '{section}'")
			continue

		if not isinstance(content, dict):
			raise ValueError(f"Config section '{section}' must be a mapping")

		for key, value in content.items():
			if key in SECTIONS[section]:
				values[key] = value
			else:
				logger.warning(f"Ignoring unknown config key '{section}.{key}'")

	return Settings(**values)


def load_config (config_path: str = "config.yaml") -> Settings:

	"""
	Load settings from a YAML file, falling back to defaults if it is missing.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return Settings()

	with open(config_path, "r") as f:
		data = yaml.safe_load(f) or {}

	if not isinstance(data, dict):
		raise ValueError(f"Config file {config_path} must contain a mapping")

	return settings_from_dict(data)
