import asyncio
import logging
import random

import regroove
import regroove.constants.drums
import regroove.marshal
import regroove.model

logging.basicConfig(level=logging.INFO)

# Plays a few bars through the engine without a host: a basic beat is entered
# cell by cell, a population is generated from it, and wait mode commits a new
# variation every two bars. Each committed pattern is saved to examples/out/.

LANE_NAMES = [name for name, _ in regroove.constants.drums.LANES]


def show (engine: regroove.SyncEngine) -> None:

	lanes = regroove.marshal.detail_view(engine.marshal().onsets)

	for external in range(engine.channels - 1, -1, -1):
		internal = regroove.marshal.internal_channel(external)
		cells = "".join("x" if value == 1 else "." for value in lanes[external])
		logging.info(f"{LANE_NAMES[internal]:>14} {cells}")


async def main () -> None:

	model = regroove.model.StochasticModel.from_directory("examples/models/busy", rng=random.Random(8))
	storage = regroove.MidiPatternStore("examples/out")
	engine = regroove.SyncEngine(regroove.Generator(model), storage=storage, rng=random.Random(9))

	# Host lane numbers run opposite to the grid columns.
	kick = regroove.marshal.internal_channel(0)
	snare = regroove.marshal.internal_channel(1)
	hat = regroove.marshal.internal_channel(2)

	engine.set_velocity(110)

	for step in range(0, 16, 4):
		engine.update_cell(step, kick, 1)

	for step in (4, 12):
		engine.update_cell(step, snare, 1)

	for step in range(0, 16, 2):
		engine.update_cell(step, hat, 1)

	show(engine)

	engine.set_samples(100)
	engine.set_density(0.6)
	await engine.generate()

	engine.set_sync_rate(2)
	engine.set_sync_on(1)

	for bar in range(8):
		for step in range(16):
			if await engine.on_clock_tick(bar * 16 + step):
				logging.info(f"Bar {bar + 1}: new pattern")
				show(engine)
				await engine.save_pattern(f"bar_{bar + 1}")

	await engine.get_source_pattern()
	logging.info("Back to the source pattern")
	show(engine)


if __name__ == "__main__":
	asyncio.run(main())
