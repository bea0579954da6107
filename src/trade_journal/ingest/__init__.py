from trade_journal.ingest.ingestor import TradeIngestor, parse_timestamp

__all__ = ["TradeIngestor", "parse_timestamp"]
