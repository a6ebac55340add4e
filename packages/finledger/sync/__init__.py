"""Incremental bank sync: provider capability, engine, Plaid adapter, linking."""
