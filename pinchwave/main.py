"""Run pinchwave: `python -m pinchwave.main --help`"""

import typer

from pinchwave.script_utils import pinchwave_cli


def dispatched_pinchwave_cli():
    typer.run(pinchwave_cli)


if __name__ == "__main__":
    dispatched_pinchwave_cli()
