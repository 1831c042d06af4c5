import uvicorn

from health_insights.main import app
from health_insights.settings import HOST, PORT, configure_logging


def main():
    configure_logging()
    uvicorn.run(app, host=HOST, port=PORT)


if __name__ == "__main__":
    main()
