import uvicorn

from engagecore_api.core.settings import settings


def main() -> None:
    uvicorn.run(
        "engagecore_api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    main()
