"""Parts catalog spreadsheet import pipeline (parse, validate, diff, import, rollback)."""

__version__ = "0.1.0"
