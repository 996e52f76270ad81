"""CLI tools for the RepoScout pipeline.

- ``python -m reposcout.cli.worker`` runs queue consumers (and the
  stale-task sweep) as an independent process.
- ``python -m reposcout.cli`` is the same worker.

Heavy imports are deferred inside functions so ``--help`` stays fast.
"""
