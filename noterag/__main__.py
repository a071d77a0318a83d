"""Run the API server: ``python -m noterag``."""

import uvicorn

from noterag.core.config import get_settings


def main():
    settings = get_settings()
    uvicorn.run(
        "noterag.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
