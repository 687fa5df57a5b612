"""Module entrypoint for `python -m fanout`."""

try:
    from .cli import run
except ImportError:
    # Executed as a plain script (runpy.run_path) outside package context.
    from fanout.cli import run


if __name__ == "__main__":
    raise SystemExit(run())
