"""Entry point for running the application with uvicorn."""

import uvicorn

from payrun_engine.config import get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    uvicorn.run(
        "payrun_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
