"""Entry point: ``python -m whiskey.worker <invocation arguments>``."""

from whiskey.worker.harness import main

if __name__ == "__main__":  # pragma: no cover
    main()
