import uvicorn

from pointmart_api.core.settings import settings


def main() -> None:
    host, _, port = settings.run_address.rpartition(":")
    uvicorn.run(
        "pointmart_api.app:create_app",
        factory=True,
        host=host or "0.0.0.0",
        port=int(port),
    )


if __name__ == "__main__":
    main()
