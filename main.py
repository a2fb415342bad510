#!/usr/bin/env python3
"""
jwt-users -- Username/password registration and collection-scoped JWTs.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py provision-secret
  python main.py provision-secret users admins

Environment variables (see core/config.py for the full list):
  SECRETS_DIR           Directory holding one signing secret per namespace.
  USERS_DB_URL          SQLAlchemy URL of the default user collection.
  COLLECTION_NAME       Namespace of the default collection (default: users).
  TOKEN_EXPIRE_SECONDS  Token lifetime; 0 issues tokens without expiry.
"""

import argparse
from typing import Optional, Sequence

from auth.secrets_store import FileSecretStore
from core.config import get_settings


def _provision(namespaces: list[str]) -> int:
    """Create any missing namespace secrets. Returns a process exit code.

    Running this at deploy time means the first requests never race to
    create the secret.
    """
    settings = get_settings()
    store = FileSecretStore(settings.secrets_dir, settings.secret_bytes)
    status = 0
    for namespace in namespaces or [settings.collection_name]:
        try:
            created = store.provision(namespace)
        except ValueError as e:
            print(f"  [!] {e}")
            status = 1
            continue
        state = "created" if created else "exists"
        print(f"  {namespace}: {state} ({store.path_for(namespace)})")
    return status


def _serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=host, port=port, reload=reload)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="jwt-users",
        description="Username/password registration and JWT bearer tokens scoped to a user collection.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py provision-secret
  SECRETS_DIR=/var/lib/jwt-users python main.py provision-secret users admins
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")

    provision = sub.add_parser("provision-secret", help="Create signing secrets ahead of first use")
    provision.add_argument(
        "namespaces",
        nargs="*",
        metavar="NAMESPACE",
        help="Namespaces to provision (default: COLLECTION_NAME)",
    )

    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve(args.host, args.port, args.reload)
    if args.command == "provision-secret":
        return _provision(args.namespaces)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
