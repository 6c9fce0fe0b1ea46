"""
TapFit Puck - Entry Point
=========================

Main entry point for the TapFit Puck rep counter.

This module:
- Loads configuration from a settings JSON file (optional)
- Creates the TapFitPuckApplication instance
- Runs the workout main loop
- Handles top-level errors

Usage:
    python main.py                  # defaults
    python main.py settings.json    # with overrides
    python main.py settings.json --auto-start

Module: main
Version: 1.0.0
"""

import argparse
import sys
import traceback

from config import load_config
from core.constants import APP_VERSION


def load_configuration(path, auto_start=False):
    """
    Load application configuration.

    Args:
        path: Settings file path, or None for defaults
        auto_start: Force the auto_start flag on

    Returns:
        dict: Application configuration

    Raises:
        RuntimeError: If configuration loading fails
    """
    print("Loading configuration...")

    try:
        app_config = load_config(path)
    except OSError as e:
        print("ERROR: Configuration file not found: {}".format(e))
        raise RuntimeError("Configuration file not found: {}".format(e))
    except ValueError as e:
        print("ERROR: Invalid configuration: {}".format(e))
        raise RuntimeError("Configuration loading failed: {}".format(e))

    if auto_start:
        app_config["auto_start"] = True

    print("  Sets: {} x {} reps".format(app_config["max_sets"], app_config["max_reps"]))
    print("  Rest: {}s".format(app_config["rest_seconds"]))
    print("  Reconnect schedule: {}".format(app_config["reconnect_delays"]))
    print("Configuration loaded successfully")
    print()

    return app_config


def run_application(app_config):
    """
    Run the main application.

    Args:
        app_config: Configuration dictionary
    """
    from app import TapFitPuckApplication

    app = None

    try:
        print("Creating TapFitPuckApplication instance...")
        app = TapFitPuckApplication(app_config)
        print()
        app.run()

    except Exception as e:
        print()
        print("=" * 60)
        print("FATAL ERROR: {}".format(e))
        print("=" * 60)
        traceback.print_exception(type(e), e, e.__traceback__)

        if app:
            print()
            print("Application status at time of crash:")
            for key, value in app.get_status().items():
                print("  {}: {}".format(key, value))

        raise


def main(argv=None):
    """
    Application entry point.

    Returns:
        int: Process exit code
    """
    parser = argparse.ArgumentParser(description="TapFit Puck rep counter")
    parser.add_argument("settings", nargs="?", default=None, help="Settings JSON file")
    parser.add_argument("--auto-start", action="store_true", help="Start set 1 as soon as the puck connects")
    args = parser.parse_args(argv)

    print("=" * 60)
    print("TapFit Puck v{} - Rep Counter".format(APP_VERSION))
    print("=" * 60)

    try:
        app_config = load_configuration(args.settings, auto_start=args.auto_start)
        run_application(app_config)
        return 0

    except RuntimeError as e:
        print()
        print("STARTUP FAILED: {}".format(e))
        return 1

    except Exception as e:
        print()
        print("UNHANDLED EXCEPTION: {}".format(e))
        return 1

    finally:
        print()
        print("=" * 60)
        print("TapFit Puck - Shutdown complete")
        print("=" * 60)


if __name__ == "__main__":
    sys.exit(main())
