"""Validation-rule suspension around a load run, with crash-safe session state."""
