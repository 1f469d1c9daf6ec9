"""
Server Entry Point

Usage:
    Development:  storecache-server --dev
    Production:   storecache-server
    Gunicorn:     storecache-server --gunicorn

The sync tracker and the scheduler live in the process, so production runs a
single worker unless WORKERS says otherwise.
"""

import argparse
import os
import subprocess

import uvicorn

APP = "storecache.main:app"
DEFAULT_PORT = 10000


def _port() -> int:
    return int(os.getenv("PORT") or os.getenv("API_PORT") or DEFAULT_PORT)


def run_dev_server() -> None:
    """Development server with auto-reload."""
    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=_port(),
        reload=True,
        reload_dirs=["storecache"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server() -> None:
    """Production server with Uvicorn directly."""
    uvicorn.run(
        APP,
        host="0.0.0.0",
        port=_port(),
        workers=int(os.getenv("WORKERS", 1)),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
        date_header=True,
    )


def run_gunicorn() -> None:
    """Gunicorn with Uvicorn workers, configured by gunicorn.conf.py."""
    subprocess.run(["gunicorn", APP, "-c", "gunicorn.conf.py"], check=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Storefront Lookup API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run with Gunicorn (production)")
    parser.add_argument("--port", type=int, default=None, help=f"Port to run on (default: {DEFAULT_PORT})")

    args = parser.parse_args()

    if args.port:
        os.environ["PORT"] = str(args.port)

    if args.dev:
        print("Starting development server...")
        run_dev_server()
    elif args.gunicorn:
        print("Starting production server with Gunicorn...")
        run_gunicorn()
    else:
        print("Starting production server with Uvicorn...")
        run_prod_server()


if __name__ == "__main__":
    main()
