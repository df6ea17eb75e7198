"""Client for the MAXI trading backend: API access, reason decoding, chart overlays and dashboard views."""

__version__ = "0.1.0"
