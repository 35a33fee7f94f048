"""Entry point for ``python -m tada``."""

from tada.main import run

if __name__ == "__main__":
    run()
