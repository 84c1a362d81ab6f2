class ConfigurationError(ValueError):
    """Invalid input detected before any iteration is performed."""


class OperatorError(RuntimeError):
    """A matrix-free operator failed or returned a result of the wrong size."""
