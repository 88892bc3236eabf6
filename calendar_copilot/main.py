from __future__ import annotations

import logging
import os

import uvicorn


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main() -> None:
    host = os.getenv("CALENDAR_COPILOT_HOST", "0.0.0.0")
    port = int(os.getenv("CALENDAR_COPILOT_PORT", "4000"))
    configure_logging(os.getenv("CALENDAR_COPILOT_LOG_LEVEL", "INFO"))
    uvicorn.run("calendar_copilot.web_app:create_app", factory=True, host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
