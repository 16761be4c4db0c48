"""Module entrypoint for ``python -m treadmill``."""

from treadmill.cli.main import cli

if __name__ == "__main__":
    cli(prog_name="vendor-treadmill")
