"""EzStudy backend: study-assistant API with provider fallback."""

__version__ = "1.0.0"
