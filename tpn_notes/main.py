from tpn_notes.api.main import app
from tpn_notes.settings import load_settings


def run() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
