"""
Service entry points for the alert engine.

Each subdirectory contains a standalone service process.

Services:
    alert-listener: Notice deduplication, dismissal and digest publication
"""
