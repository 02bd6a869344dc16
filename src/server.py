"""Protean Engine runner for the marketplace domain.

Starts the Engine so event handlers (notifications, tracking, stock alerts)
run asynchronously when the domain is configured for async event processing.

Usage:
    python src/server.py
"""

import asyncio

from protean.server.engine import Engine


def _get_domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


async def run():
    engine = Engine(_get_domain())
    await engine.run()


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
