"""AttributionNav - multi-touch marketing attribution."""

__version__ = "1.0.0"
