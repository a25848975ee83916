#!/usr/bin/env python3
"""
AuthGate -- credential and token service plus a delegating resource service.

Usage:
  python main.py auth
  python main.py auth --port 3001 --reload
  python main.py resource --port 5000
  python main.py resource --host 0.0.0.0

Environment variables (see core/config.py for the full list):
  SECRET_KEY         Signing secret, >= 32 chars. Required unless DEBUG=true.
  DEBUG              true = auto-generate SECRET_KEY and log reset tokens.
  DATABASE_URL       SQLAlchemy URL shared by both services.
  AUTH_SERVICE_URL   Where the resource service sends /verify-token calls.
"""

import argparse

import uvicorn

_APPS = {
    "auth": ("asgi:auth_app", 3001),
    "resource": ("asgi:resource_app", 5000),
}


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="authgate",
        description="Run the AuthGate auth service or the example resource service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py auth
  python main.py resource --port 5000
  DEBUG=true python main.py auth --reload
        """,
    )
    parser.add_argument(
        "service",
        choices=sorted(_APPS),
        help="Which service to run",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind (default: 3001 for auth, 5000 for resource)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on code changes (development only)",
    )
    args = parser.parse_args()

    target, default_port = _APPS[args.service]
    uvicorn.run(target, host=args.host, port=args.port or default_port, reload=args.reload)


if __name__ == "__main__":
    main()
