"""Allow ``python -m reposcout.cli`` to start a queue worker."""

from reposcout.cli.worker import main

main()
