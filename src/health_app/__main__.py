import logging

import uvicorn

from health_app.main import create_app
from health_app.settings import HealthSettings


def main() -> None:
    settings = HealthSettings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    app = create_app(settings)
    logging.getLogger(__name__).info(
        f"Server is running on port {settings.port}, version {app.state.info.version}"
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
