"""Configuration, object storage upload, URL ledger and preview helpers."""
