"""Client side of the recipe scaler. Centres around the `LocalCache`.

Why is this hard?

- Scaling is done by a remote service that is not always up. A scale request
  should still leave a scaled recipe behind, so a 5xx or an empty answer falls
  back to computing it locally.
- AI scaling makes the service generate tips some time later, with no signal
  when it is done. We wait a bit, then go and look.
- Right after registering, the user is not always readable yet. Retry.

Everything mutates the cache by id only, so concurrent completions are fine.
"""
