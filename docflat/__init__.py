"""docflat: flatten spreadsheets, CSV and XML into field records and build quotation line items."""

__version__ = "0.1.0"
