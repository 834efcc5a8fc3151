"""flightlab: exploratory models of daily flight counts."""

__version__ = "0.1.0"
