from __future__ import annotations


class OptimizerError(Exception):
    """Base class for imgopt errors."""


class SettingsError(OptimizerError):
    """Invalid configuration, raised before any file is touched."""


class SelectionError(SettingsError):
    """Malformed include / exclude / test matcher."""


class EngineError(OptimizerError):
    """A codec rejected the input it was given."""
