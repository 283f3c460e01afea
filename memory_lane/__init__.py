"""Memory Lane: a narrated slideshow backed by a Dropbox folder."""

__version__ = "0.1.0"
