"""Trade journal core: symbol normalization, FIFO ledger and fill verification."""

__version__ = "0.1.0"
