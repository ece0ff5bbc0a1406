"""Entry point for ``python -m runtime_updater``."""

from runtime_updater.main import run

if __name__ == "__main__":
    run()
