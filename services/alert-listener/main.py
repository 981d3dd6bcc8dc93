"""
Alert Listener Service entry point.

Usage:
    python services/alert-listener/main.py

See ``alert_engine.listener`` for the service itself and the environment
variables it reads.
"""

import asyncio

from alert_engine.listener import main

if __name__ == "__main__":
    asyncio.run(main())
