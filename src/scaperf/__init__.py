"""scaperf: build performance regression checks for static code analysis plugins."""

__version__ = "0.1.0"
