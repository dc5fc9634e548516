"""Entry point for `python -m wagate` / `wagate`."""

from __future__ import annotations

import asyncio
import sys


def main() -> None:
    from wagate.app import WagateApp
    from wagate.logger import logger

    try:
        asyncio.run(WagateApp().run())
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.exception("Fatal error, exiting")
        sys.exit(1)


if __name__ == "__main__":
    main()
