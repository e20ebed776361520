"""Run the editor proxy with Flask's development server.

Run as a module: `python -m editor_proxy.main`
"""
import os
import logging

from dotenv import load_dotenv

from .app import AppContext, create_app
from .config import Settings


def configure_logging(level: str = None):
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(host: str = "127.0.0.1", port: int = 8000, debug: bool = False):
    configure_logging()
    app = create_app(AppContext(Settings()))
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    import argparse

    # .env lives next to the package directory
    dotenv_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
    load_dotenv(dotenv_path=dotenv_path)

    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default=os.getenv("PROXY_HOST", "127.0.0.1"), help="Interface to bind")
    parser.add_argument("--port", type=int, default=int(os.getenv("PROXY_PORT", "8000")), help="Port to listen on")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args()

    run(host=args.host, port=args.port, debug=args.debug)
