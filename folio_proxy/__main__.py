"""Run the portfolio content service with Flask's development server."""

from __future__ import annotations

from .app import app
from .config import SETTINGS, configure_logging


def main() -> None:
    log = configure_logging(SETTINGS)
    log.info(
        "Serving %s on port %s (cache=%s, primary transport %s)",
        SETTINGS.asset_root,
        SETTINGS.port,
        SETTINGS.cache_dir,
        "on" if SETTINGS.primary_transport else "off",
    )
    app.run(host="0.0.0.0", port=SETTINGS.port, debug=False)


if __name__ == "__main__":
    main()
