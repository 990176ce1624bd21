"""DisplayPort multi-timing bandwidth checker."""

__version__ = '0.1.0'
