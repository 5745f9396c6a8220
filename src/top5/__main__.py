"""Top5 entrypoint.

Run with:
  python -m top5
"""

import os
import uvicorn

from top5.logging_setup import setup_logging


def main() -> None:
    setup_logging()
    host = os.getenv("TOP5_HOST", "0.0.0.0")
    port = int(os.getenv("TOP5_PORT", "8000"))
    reload = os.getenv("TOP5_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("top5.app:app", host=host, port=port, reload=reload, log_config=None)

if __name__ == "__main__":
    main()
