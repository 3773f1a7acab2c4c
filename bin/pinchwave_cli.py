#!/usr/bin/env python
"""
Command-line interface for the pinchwave application.

This script provides a CLI wrapper around the run_pinchwave function, allowing the
main parameters to be controlled via command-line arguments.

Examples:
    # Run with default settings
    python pinchwave_cli.py --model-path hand_landmarker.task

    # Stiffer pinches, smoother hands
    python pinchwave_cli.py --pinch-on 25 --pinch-off 45 --lerp-factor 0.1

    # Print every hand detection as json
    python pinchwave_cli.py --log-hands

    # See what voices there are
    python pinchwave_cli.py --list-voices
"""

from pinchwave.main import dispatched_pinchwave_cli

if __name__ == "__main__":
    dispatched_pinchwave_cli()
