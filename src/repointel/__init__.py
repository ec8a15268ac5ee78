"""repointel — derived project intelligence from GitHub repository metadata."""

__version__ = "0.1.0"
