"""Document and audio ingestion."""
