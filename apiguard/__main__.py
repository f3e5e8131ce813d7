"""Run the API with uvicorn: ``python -m apiguard``."""

import uvicorn

from apiguard.config.loader import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "apiguard.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.listen_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
