"""Entry point for running the application with uvicorn."""

import logging

import uvicorn

from payroll_signoff.config import settings


def main() -> None:
    """Run the application."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "payroll_signoff.api.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
