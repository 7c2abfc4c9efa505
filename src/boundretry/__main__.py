"""Module entrypoint for `python -m boundretry`."""

from boundretry.cli import run

if __name__ == "__main__":
    raise SystemExit(run())
