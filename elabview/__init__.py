"""Serial protocol, sample decoding, signal analysis and instrument controllers for data acquisition boards."""

__version__ = "0.7.0"