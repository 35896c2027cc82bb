"""Learning analytics methods: chapter pipelines for educational data."""

__version__ = "0.1.0"
