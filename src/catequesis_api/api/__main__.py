"""
catequesis_api.api.__main__

Entrypoint for running the service via `python -m catequesis_api.api`.

Responsibilities:
- Load settings.
- Create the app.
- Start uvicorn with structlog-compatible logging config.
"""

from __future__ import annotations

import uvicorn

from catequesis_api.api.app import create_app
from catequesis_api.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
        proxy_headers=settings.trust_forwarded_for,
    )


if __name__ == "__main__":
    main()
