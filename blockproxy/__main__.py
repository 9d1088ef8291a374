import uvicorn

from blockproxy.config import load_settings
from blockproxy.main import build_app


def main() -> None:
    settings = load_settings()
    uvicorn.run(build_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
