"""Bootstrap robust operating curves for uncertainty-estimation methods."""

__version__ = "0.3.0"
