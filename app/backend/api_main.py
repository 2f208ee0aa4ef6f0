import logging
import os

import uvicorn

from app.backend.api.app import create_app

app = create_app()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(app, host=os.getenv("ISL_HOST", "0.0.0.0"), port=int(os.getenv("ISL_PORT", "8000")))


if __name__ == "__main__":
    main()
