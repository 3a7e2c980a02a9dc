"""
Run the Asset Lifecycle Service with uvicorn.

Host and port default to the API_HOST / API_PORT settings.

Usage:
    python run.py
    python run.py --reload    # Development mode with auto-reload
    python run.py --port 8080 # Custom port
"""
import argparse
import uvicorn

from assetflow.config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the Asset Lifecycle Service API server")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.api_host,
        help=f"Host to bind to (default: {settings.api_host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.api_port,
        help=f"Port to bind to (default: {settings.api_port})"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )

    args = parser.parse_args()

    if args.workers > 1 and settings.store_backend == "memory":
        parser.error("the in-memory store cannot be shared between workers; use --workers 1")

    print("Starting Asset Lifecycle Service API server...")
    print(f"  Environment: {settings.environment}")
    print(f"  Store: {settings.store_backend}")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Reload: {args.reload}")
    if not args.reload and args.workers > 1:
        print(f"  Workers: {args.workers}")
    print()

    uvicorn.run(
        "assetflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
