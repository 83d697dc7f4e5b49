"""Core domain package for bidscope.

Core contains qualification, ordering, and dispatch logic without any HTTP,
Telegram, or storage-specific code, keeping the business logic portable.
"""
