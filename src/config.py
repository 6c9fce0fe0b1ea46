"""
Configuration
=============
Dict-based configuration for the TapFit Puck rep counter.

Configuration is a plain dictionary. Defaults come from core.constants and
can be overridden by a JSON settings file:

    {
        "max_reps": 12,
        "rest_seconds": 60,
        "reconnect_delays": [1, 2, 4]
    }

Keys:
    max_reps            Target reps per set
    max_sets            Sets per session
    rest_seconds        Rest countdown between sets
    connect_timeout     Scan window for a connect, in seconds
    reconnect_delays    Backoff schedule; one retry per entry
    puck_names          Advertised names accepted as a Puck
    loop_interval       Main loop sleep, in seconds
    auto_start          Run handshake then start without user input
    history_size        Completed sets kept in memory
    device_tag          Prefix for application log lines

Module: config
Version: 1.0.0
"""

import json

from core.constants import (
    MAX_REPS,
    MAX_SETS,
    REST_SECONDS,
    CONNECT_TIMEOUT_SEC,
    RECONNECT_DELAYS_SEC,
    PUCK_NAMES,
    LOOP_INTERVAL_SEC,
    DEVICE_TAG,
)


def get_default_config():
    """
    Return a fresh configuration dictionary with all defaults.

    Returns:
        dict: Default configuration
    """
    return {
        "max_reps": MAX_REPS,
        "max_sets": MAX_SETS,
        "rest_seconds": REST_SECONDS,
        "connect_timeout": CONNECT_TIMEOUT_SEC,
        "reconnect_delays": list(RECONNECT_DELAYS_SEC),
        "puck_names": list(PUCK_NAMES),
        "loop_interval": LOOP_INTERVAL_SEC,
        "auto_start": False,
        "history_size": 50,
        "device_tag": DEVICE_TAG,
    }


def validate_config(config):
    """
    Check value ranges of a configuration dictionary.

    Args:
        config: Configuration dictionary

    Raises:
        ValueError: On the first invalid value found
    """
    for key in ("max_reps", "max_sets", "rest_seconds", "history_size"):
        value = config[key]
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ValueError("{} must be a positive integer, got {!r}".format(key, value))

    # Rep counts travel as a single byte
    if config["max_reps"] > 0xFF:
        raise ValueError("max_reps must be at most 255, got {}".format(config["max_reps"]))

    if config["connect_timeout"] <= 0:
        raise ValueError("connect_timeout must be positive")

    if config["loop_interval"] <= 0:
        raise ValueError("loop_interval must be positive")

    delays = config["reconnect_delays"]
    if not isinstance(delays, (list, tuple)):
        raise ValueError("reconnect_delays must be a list")
    for delay in delays:
        if delay < 0:
            raise ValueError("reconnect_delays cannot contain negative values")

    if not config["puck_names"]:
        raise ValueError("puck_names cannot be empty")


def load_config(path=None):
    """
    Load configuration from a JSON settings file, merged over defaults.

    Args:
        path: Path to the settings file, or None for defaults only

    Returns:
        dict: Validated configuration

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or holds invalid values
    """
    config = get_default_config()

    if path is not None:
        with open(path, "r") as f:
            try:
                overrides = json.load(f)
            except ValueError as e:
                raise ValueError("Invalid settings file {}: {}".format(path, e))

        if not isinstance(overrides, dict):
            raise ValueError("Settings file {} must contain a JSON object".format(path))

        unknown = [key for key in overrides if key not in config]
        if unknown:
            print("[CONFIG] WARNING: Ignoring unknown keys: {}".format(", ".join(sorted(unknown))))

        for key in config:
            if key in overrides:
                config[key] = overrides[key]

    validate_config(config)
    return config


def get_device_tag(config):
    """Return the log prefix for application output."""
    return config.get("device_tag", DEVICE_TAG)
