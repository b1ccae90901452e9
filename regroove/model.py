"""A stochastic rhythm model for the generator.

:class:`StochasticModel` turns a seed pattern into a population of variations.
Each density level applies a higher onset threshold than the one before it,
so density index 0 is the busiest and the last index the sparsest. Within a
level every sample is an independent draw:

1. Each seed onset survives with probability ``1 - note_dropout``.
2. Every cell scores a noise value weighted by its lane's prior and by the
   metric accent of its step; surviving seed onsets get a fixed bonus.
3. Cells scoring at or above the level's threshold become onsets. Surviving
   seed onsets keep their velocity, new ones draw a velocity around the
   model's mean, and every onset draws a micro-timing offset.

Model parameters live in ``model.yaml`` inside a model directory. Sessions are
saved as JSON.
"""

import asyncio
import dataclasses
import json
import logging
import math
import os
import random
import typing

import yaml

import regroove.constants
import regroove.generator
import regroove.pattern


logger = logging.getLogger(__name__)


MODEL_FILENAME = "model.yaml"
SESSION_FORMAT_VERSION = 1

# Score multiplier by position within each beat: downbeat, "e", "and", "a"
METRIC_ACCENTS = (1.0, 0.55, 0.8, 0.55)

OFFSET_VALUES = (-1, 0, 1)


class ModelDirectoryError (ValueError):

	"""Raised when a model directory is missing or its parameters are malformed."""


@dataclasses.dataclass
class ModelParameters:

	"""
	Tunable weights of the stochastic model.

	Attributes:
		channel_priors: Per-lane weight (0-1) on the noise score.
		seed_weight: Score bonus for seed onsets that survive dropout.
		velocity_mean: Centre of the velocity distribution for new onsets.
		velocity_spread: Standard deviation of that distribution.
		offset_weights: Relative weights of early / on-grid / late offsets.
	"""

	channel_priors: typing.List[float] = dataclasses.field(default_factory=lambda: [0.8, 0.6, 0.9, 0.35, 0.25, 0.25, 0.25, 0.15, 0.4])
	seed_weight: float = 0.6
	velocity_mean: float = 0.75
	velocity_spread: float = 0.15
	offset_weights: typing.List[float] = dataclasses.field(default_factory=lambda: [0.1, 0.8, 0.1])


def _require_unit_interval (name: str, value: typing.Any) -> float:

	if not isinstance(value, (int, float)) or isinstance(value, bool) or not 0 <= value <= 1:
		raise ModelDirectoryError(f"{name} must be a number between 0 and 1, got {value!r}")

	return float(value)


def load_model_dir (path: str, channels: int = regroove.constants.CHANNELS) -> ModelParameters:

	"""
	Read and validate the parameters in a model directory.

	Keys missing from ``model.yaml`` keep their defaults.

	Raises:
		ModelDirectoryError: If the directory or its ``model.yaml`` is missing,
			unreadable, or holds values out of range.
	"""

	if not os.path.isdir(path):
		raise ModelDirectoryError(f"Model directory {path} does not exist")

	model_file = os.path.join(path, MODEL_FILENAME)

	if not os.path.isfile(model_file):
		raise ModelDirectoryError(f"Model directory {path} has no {MODEL_FILENAME}")

	try:
		with open(model_file, "r") as f:
			data = yaml.safe_load(f)
	except yaml.YAMLError as e:
		raise ModelDirectoryError(f"Could not parse {model_file}: {e}") from e

	if data is None:
		data = {}

	if not isinstance(data, dict):
		raise ModelDirectoryError(f"{model_file} must contain a mapping")

	parameters = ModelParameters()

	if "channel_priors" in data:
		priors = data["channel_priors"]
		if not isinstance(priors, list) or len(priors) != channels:
			raise ModelDirectoryError(f"channel_priors must list {channels} values")
		parameters.channel_priors = [_require_unit_interval("channel_priors", p) for p in priors]

	for key in ("seed_weight", "velocity_mean", "velocity_spread"):
		if key in data:
			setattr(parameters, key, _require_unit_interval(key, data[key]))

	if "offset_weights" in data:
		weights = data["offset_weights"]
		if (
			not isinstance(weights, list)
			or len(weights) != len(OFFSET_VALUES)
			or any(not isinstance(w, (int, float)) or w < 0 for w in weights)
			or sum(weights) <= 0
		):
			raise ModelDirectoryError("offset_weights must be three non-negative numbers with a positive sum")
		parameters.offset_weights = [float(w) for w in weights]

	unknown = set(data) - {f.name for f in dataclasses.fields(ModelParameters)}

	if unknown:
		logger.warning(f"Ignoring unknown model parameters in {model_file}: {sorted(unknown)}")

	return parameters


def axis_length (num_samples: int) -> int:

	"""Length of each population axis for a requested sample count."""

	return int(math.sqrt(max(num_samples, 0)))


def density_thresholds (config: regroove.generator.GeneratorConfig) -> typing.List[float]:

	"""Onset threshold for each density level, busiest first."""

	levels = axis_length(config.num_samples)

	if levels <= 1:
		return [config.min_threshold] * levels

	span = config.max_threshold - config.min_threshold

	return [config.min_threshold + span * level / (levels - 1) for level in range(levels)]


class StochasticModel:

	"""Generate rhythm variations by thresholding weighted noise around a seed."""

	def __init__ (self, parameters: typing.Optional[ModelParameters] = None, rng: typing.Optional[random.Random] = None) -> None:

		self.parameters = parameters if parameters is not None else ModelParameters()
		self.rng = rng if rng is not None else random.Random()

	@classmethod
	def from_directory (cls, path: str, rng: typing.Optional[random.Random] = None) -> "StochasticModel":

		"""Build a model from a validated model directory."""

		return cls(parameters=load_model_dir(path), rng=rng)

	async def generate (self, seed: regroove.pattern.PatternTriple, config: regroove.generator.GeneratorConfig) -> regroove.generator.CandidatePopulation:

		"""Build the population in a worker thread so the event loop keeps running."""

		if seed.shape != (config.loop_duration, config.channels):
			raise ValueError(f"Seed shape {seed.shape} does not match config ({config.loop_duration}, {config.channels})")

		if len(self.parameters.channel_priors) != config.channels:
			raise ValueError(f"Model has priors for {len(self.parameters.channel_priors)} channels, config asks for {config.channels}")

		return await asyncio.to_thread(self._build_population, seed, config)

	def _build_population (self, seed: regroove.pattern.PatternTriple, config: regroove.generator.GeneratorConfig) -> regroove.generator.CandidatePopulation:

		samples = axis_length(config.num_samples)

		candidates = tuple(
			tuple(self._sample(seed, threshold, config.note_dropout) for _ in range(samples))
			for threshold in density_thresholds(config)
		)

		return regroove.generator.CandidatePopulation(seed=seed, candidates=candidates, config=config)

	def _sample (self, seed: regroove.pattern.PatternTriple, threshold: float, note_dropout: float) -> regroove.pattern.PatternTriple:

		"""Draw one variation of the seed at the given onset threshold."""

		rng = self.rng
		params = self.parameters

		onsets: typing.List[typing.List[int]] = []
		velocities: typing.List[typing.List[float]] = []
		offsets: typing.List[typing.List[int]] = []

		for step in range(seed.steps):

			accent = METRIC_ACCENTS[step % len(METRIC_ACCENTS)]
			onset_row: typing.List[int] = []
			velocity_row: typing.List[float] = []
			offset_row: typing.List[int] = []

			for channel in range(seed.channels):

				kept = seed.onsets[step][channel] == 1 and rng.random() >= note_dropout
				score = rng.random() * params.channel_priors[channel] * accent

				if kept:
					score += params.seed_weight

				if score < threshold:
					onset_row.append(0)
					velocity_row.append(0.0)
					offset_row.append(0)
					continue

				if kept:
					velocity = seed.velocities[step][channel]
				else:
					velocity = min(max(rng.gauss(params.velocity_mean, params.velocity_spread), 0.05), 1.0)

				onset_row.append(1)
				velocity_row.append(round(velocity, 3))
				offset_row.append(rng.choices(OFFSET_VALUES, weights=params.offset_weights)[0])

			onsets.append(onset_row)
			velocities.append(velocity_row)
			offsets.append(offset_row)

		return regroove.pattern.PatternTriple(onsets=onsets, velocities=velocities, offsets=offsets)

	async def save (self, population: regroove.generator.CandidatePopulation, path: str) -> None:

		"""Write a population to a JSON session file."""

		document = {
			"version": SESSION_FORMAT_VERSION,
			"config": population.config.to_dict() if population.config is not None else None,
			"seed": population.seed.to_dict(),
			"candidates": [[candidate.to_dict() for candidate in row] for row in population.candidates],
		}

		def _write () -> None:
			with open(path, "w") as f:
				json.dump(document, f)

		await asyncio.to_thread(_write)

	async def load (self, path: str) -> regroove.generator.CandidatePopulation:

		"""Read a population written by :meth:`save`."""

		def _read () -> typing.Dict[str, typing.Any]:
			with open(path, "r") as f:
				return json.load(f)

		document = await asyncio.to_thread(_read)

		if document.get("version") != SESSION_FORMAT_VERSION:
			raise ValueError(f"Unsupported session format in {path}: {document.get('version')!r}")

		config = regroove.generator.GeneratorConfig(**document["config"]) if document.get("config") else None

		return regroove.generator.CandidatePopulation(
			seed = regroove.pattern.PatternTriple.from_dict(document["seed"]),
			candidates = tuple(
				tuple(regroove.pattern.PatternTriple.from_dict(candidate) for candidate in row)
				for row in document["candidates"]
			),
			config = config
		)
