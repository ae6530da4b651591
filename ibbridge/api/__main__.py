import uvicorn

from ibbridge.api import settings


def main() -> None:
    uvicorn.run("ibbridge.api.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    main()
