"""
Regroove - live generative drum pattern control over OSC.

Regroove keeps a one-bar drum loop in step with a host's transport and swaps
in variations from a generative rhythm model on musical boundaries:

- **wait** mode commits a new variation every 1, 2 or 4 bars.
- **snap** mode commits on every second sync trigger.
- **toggle** mode auditions a variation and puts the original back on the
  next trigger.

Every committed pattern goes into a 100-entry history that the performer can
step back through, and the seed of the last generation can be recalled at any
time. Patterns are saved and loaded as standard MIDI files.

The host (for example a Max for Live device) talks to regroove over OSC. It
sends parameter changes, clock steps and sync triggers, and receives display
matrices and a playback event sequence whenever the pattern changes.

Minimal example:

    ```python
    import asyncio

    import regroove

    async def main ():
        engine = regroove.SyncEngine(regroove.Generator(regroove.StochasticModel()))
        engine.update_cell(0, 8, 1)
        await engine.generate()
        engine.set_sync_on(1)
        engine.set_sync_mode(1)
        await engine.on_sync_trigger()
        print(engine.store.current.onsets)

    asyncio.run(main())
    ```

Run the OSC service with ``python -m regroove [config.yaml]``.

Package-level exports: ``SyncEngine``, ``SyncMode``, ``Generator``,
``GeneratorConfig``, ``PatternTriple``, ``StochasticModel``,
``MidiPatternStore``, ``OscBridge``.
"""

import regroove.engine
import regroove.generator
import regroove.model
import regroove.osc
import regroove.pattern
import regroove.storage


SyncEngine = regroove.engine.SyncEngine
SyncMode = regroove.engine.SyncMode
Generator = regroove.generator.Generator
GeneratorConfig = regroove.generator.GeneratorConfig
PatternTriple = regroove.pattern.PatternTriple
StochasticModel = regroove.model.StochasticModel
MidiPatternStore = regroove.storage.MidiPatternStore
OscBridge = regroove.osc.OscBridge
