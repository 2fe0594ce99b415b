from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict
import json
import logging
import os
import sys
import uuid

import uvicorn

from achievements.api.http_app import build_app
from achievements.logging_setup import configure_logging
from achievements.roles import SUPPORTED_ROLES, RuntimeRole, validate_role
from achievements.services.bootstrap import RuntimeContainer, build_runtime_container

API_PORT = 8000
RECONCILER_PORT = 8100


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Student achievement service")
    parser.add_argument("--role", required=True, help=f"Runtime role ({', '.join(SUPPORTED_ROLES)})")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    parser.add_argument(
        "--dry-run-startup",
        action="store_true",
        help="Build the runtime container from the environment and exit",
    )
    parser.add_argument(
        "--reconcile-once",
        action="store_true",
        help="Run a single orphan sweep, print the result as JSON and exit",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="With --reconcile-once: soft-delete the orphans found instead of only reporting them",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable code reload (dev mode)",
    )
    return parser.parse_args(argv)


def _port_for(role: RuntimeRole, requested: int | None) -> int:
    if requested is not None:
        return requested
    return API_PORT if role.serves_api else RECONCILER_PORT


def _app_for(*, role: RuntimeRole, run_id: str, container: RuntimeContainer) -> object:
    return build_app(
        role=role.name,
        run_id=run_id,
        mode=container.mode,
        reconcile_loop=container.reconcile_loop,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
        readiness_probe=container.readiness_probe,
    )


def create_runtime_app() -> object:
    role = validate_role(os.getenv("APP_ROLE", "api"))
    configure_logging(_log_level(os.getenv("LOG_LEVEL", "INFO")))
    return _app_for(role=role, run_id=str(uuid.uuid4()), container=build_runtime_container(role))


async def _reconcile_once(container: RuntimeContainer, *, apply: bool) -> dict[str, object]:
    if container.on_startup is not None:
        await container.on_startup()
    try:
        result = await container.api_deps.reconciler.reconcile_orphans(dry_run=not apply)
    finally:
        if container.on_shutdown is not None:
            await container.on_shutdown()
    return asdict(result)


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        role = validate_role(args.role)
    except ValueError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        sys.stderr.write(f"Try one of: {', '.join(SUPPORTED_ROLES)}\n")
        return 2

    configure_logging(_log_level(args.log_level))
    run_id = str(uuid.uuid4())
    logger = logging.getLogger("runtime")
    context = {"role": role.name, "service": role.name, "run_id": run_id}

    # Built before anything else so that bad settings fail the dry run too.
    container = build_runtime_container(role)
    logger.info("runtime initialized", extra={**context, "mode": container.mode})

    if args.dry_run_startup:
        logger.info("dry-run startup complete", extra=context)
        return 0

    if args.reconcile_once:
        summary = asyncio.run(_reconcile_once(container, apply=args.apply))
        sys.stdout.write(json.dumps(summary, default=str) + "\n")
        return 0

    port = _port_for(role, args.port)
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        os.environ["LOG_LEVEL"] = args.log_level
        uvicorn.run(
            "achievements.main:create_runtime_app",
            host=args.host,
            port=port,
            log_level="warning",
            reload=True,
            factory=True,
        )
    else:
        uvicorn.run(_app_for(role=role, run_id=run_id, container=container), host=args.host, port=port, log_level="warning")
    return 0


def _log_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


if __name__ == "__main__":
    raise SystemExit(run())
