"""
Exception taxonomy for surveygraph.

Only programming and format problems are raised as exceptions.
Structural problems in a graph are reported as diagnostics by the
validator, and answer problems are returned by the navigation layer.
"""


class SurveyGraphError(Exception):
    """Base class for all surveygraph exceptions."""
    pass


class DocumentFormatError(SurveyGraphError):
    """Raised when a persisted survey document cannot be interpreted."""
    pass


class ConfigError(SurveyGraphError):
    """Raised when a builder configuration is invalid."""
    pass
