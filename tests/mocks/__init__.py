"""Test doubles for the TapFit Puck test suite."""
