"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a connection target or data directory cannot be used."""


class MissingConfigurationError(ConfigurationError):
    """Raised when an environment variable miniorm needs is blank."""

    def __init__(self, *variables: str) -> None:
        self.variables = variables
        super().__init__(f"Missing configuration for: {', '.join(variables)}")
