"""Row ingestion: CSV mapping, the batch pipeline and category seeding."""
