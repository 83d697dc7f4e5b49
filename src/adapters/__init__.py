"""Adapters connect the core dispatch loop to the feed, SQLite, and Telegram."""
