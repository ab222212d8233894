"""Run the payroll orchestrator API with uvicorn."""

import logging

import uvicorn

from payroll_orchestrator.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "Starting payroll orchestrator %s on %s:%d",
        settings.engine_version,
        settings.host,
        settings.port,
    )
    uvicorn.run(
        "payroll_orchestrator.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
