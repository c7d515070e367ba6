"""Entry point for running the application with uvicorn."""

import uvicorn

from comp_admin.config import settings


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "comp_admin.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
