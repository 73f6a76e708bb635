"""Package agents and workflows into an embedded bundle and render prompt packs."""

__version__ = "0.1.0"
