"""
MemGraph - multi-tenant memory and knowledge-graph engine.

Run the HTTP service, or provision an account with its first API key.
"""

import argparse
import json
import os

import uvicorn

from memgraph.db import init_db
from memgraph.models import Tier
from memgraph.services import accounts, api_keys


def _serve(args) -> None:
    uvicorn.run("app.main:app", host=args.host, port=args.port)


def _create_account(args) -> None:
    init_db()
    account = accounts.create_account(args.email, args.name, Tier(args.tier), is_admin=args.admin)
    key = api_keys.create(account["id"], args.key_name)
    print(json.dumps({"account": account, "api_key": key}, indent=2))


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="memgraph")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="run the HTTP service")
    serve.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))
    serve.set_defaults(handler=_serve)

    create = subparsers.add_parser("create-account", help="create an account and its first API key")
    create.add_argument("email")
    create.add_argument("--name")
    create.add_argument("--tier", choices=[tier.value for tier in Tier], default=Tier.FREE.value)
    create.add_argument("--admin", action="store_true")
    create.add_argument("--key-name", default="default")
    create.set_defaults(handler=_create_account)

    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["serve"])
    args.handler(args)


if __name__ == "__main__":
    main()
