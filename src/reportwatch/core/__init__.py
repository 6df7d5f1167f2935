"""Core domain package for reportwatch.

Core contains classification, thresholds, the inbound queue, and the
connection state machine without any Telegram or storage-specific code,
keeping the business logic portable.
"""
