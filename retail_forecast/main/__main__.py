"""Run the API with uvicorn: ``python -m retail_forecast.main``."""

import uvicorn

from retail_forecast.main.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "retail_forecast.main.app:create_app",
        factory=True,
        host=settings.service.host,
        port=settings.service.port,
        reload=settings.service.reload,
    )


if __name__ == "__main__":
    main()
