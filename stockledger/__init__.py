"""StockLedger — FIFO inventory costing and stock ledger engine."""

__version__ = "0.1.0"
