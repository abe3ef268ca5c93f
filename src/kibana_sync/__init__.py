"""Version-controlled local mirror of Kibana saved objects."""

__version__ = "0.4.0"
