"""Clinical TPN note templates: parsing, dependency extraction, evaluation and range validation."""

__version__ = "0.1.0"
