"""ForageLens: dataset-grounded mushroom identification."""

__version__ = "0.1.0"
