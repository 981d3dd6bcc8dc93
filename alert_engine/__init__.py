"""
Alert Deduplication and Escalation Engine.

Turns a stream of transient notices into deduplicated, persisted alerts
with an explicit dismissal lifecycle, and announces them through digests.

This package provides:
- Data models for notices, alerts, digests and inbound commands
- The dedup/lifecycle engine and the periodic digest aggregator
- Abstract alert store interface with in-memory and PostgreSQL backends
- Redis pub/sub transport and YAML configuration
"""

__version__ = "0.1.0"
