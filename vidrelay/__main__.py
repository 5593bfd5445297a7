import uvicorn

from vidrelay.core.config import settings


def main() -> None:
    uvicorn.run("vidrelay.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
