"""Run the API server with uvicorn."""

import uvicorn

from tutor_sync.core.config import settings


def main() -> None:
    uvicorn.run(
        "tutor_sync.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
