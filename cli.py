#!/usr/bin/env python3
"""
Storefront Notify CLI.

Primary entry point for all application operations.
Use --service to select what to run, --action to control the server lifecycle.

Usage:
    python cli.py --help
    python cli.py --service server --verbose
    python cli.py --service server --action stop
    python cli.py --service worker --verbose
    python cli.py --service queue
    python cli.py --service token --user-id admin --role ADMIN
    python cli.py --service health --debug
    python cli.py --service config
    python cli.py --service test --test-type unit
"""

import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path

import click

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from storefront.backend.core.logging import bind_source, get_logger, setup_logging


def validate_project_root() -> Path:
    """Validate that we're running from the project root."""
    if not (PROJECT_ROOT / ".project_root").exists():
        click.echo(
            click.style("Error: .project_root not found. Run from project root.", fg="red"),
            err=True,
        )
        sys.exit(1)
    return PROJECT_ROOT


def _find_process_on_port(port: int) -> list[int]:
    """Find PIDs listening on a port."""
    result = subprocess.run(
        ["lsof", "-ti", f":{port}"],
        capture_output=True, text=True,
    )
    pids = result.stdout.strip().split("\n")
    return [int(p) for p in pids if p.strip()]


def _server_stop(logger, port: int) -> None:
    """Stop a running server by finding its process on the port."""
    pids = _find_process_on_port(port)
    if not pids:
        click.echo(f"No server running on port {port}.")
        return

    for pid in pids:
        os.kill(pid, signal.SIGINT)
        logger.info("Sent SIGINT", extra={"service": "server", "pid": pid, "port": port})

    click.echo(f"Server on port {port} stopped (PID: {', '.join(str(p) for p in pids)}).")


def _server_status(port: int) -> None:
    """Check if the server is running on a port."""
    pids = _find_process_on_port(port)
    if pids:
        click.echo(f"Server is running on port {port} (PID: {', '.join(str(p) for p in pids)}).")
    else:
        click.echo(f"Server is not running on port {port}.")


def _get_server_port(port: int | None) -> int:
    """Get the port from argument or config."""
    if port is not None:
        return port
    from storefront.backend.core.config import get_app_config
    return get_app_config().application.server.port


@click.command()
@click.option(
    "--service", "-s",
    type=click.Choice(["server", "worker", "queue", "token", "health", "config", "test", "info"]),
    default="info",
    help="Service or command to run.",
)
@click.option(
    "--action", "-a",
    type=click.Choice(["start", "stop", "restart", "status"]),
    default="start",
    help="Lifecycle action for the server.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output (INFO level logging).",
)
@click.option(
    "--debug", "-d",
    is_flag=True,
    help="Enable debug output (DEBUG level logging).",
)
@click.option(
    "--host",
    default=None,
    help="Server host.",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Server port.",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload (server only).",
)
@click.option(
    "--user-id",
    default="admin",
    help="Subject of the minted token (token only).",
)
@click.option(
    "--role",
    default="ADMIN",
    help="Role claim of the minted token (token only).",
)
@click.option(
    "--test-type",
    type=click.Choice(["all", "unit", "integration"]),
    default="all",
    help="Test type to run.",
)
@click.option(
    "--coverage",
    is_flag=True,
    help="Run tests with coverage.",
)
def main(
    service: str,
    action: str,
    verbose: bool,
    debug: bool,
    host: str | None,
    port: int | None,
    reload: bool,
    user_id: str,
    role: str,
    test_type: str,
    coverage: bool,
) -> None:
    """
    Storefront Notify CLI.

    Use --service to select what to run. For the server, use --action to
    control lifecycle (start/stop/restart/status).

    \b
    Examples:
        python cli.py --service server --verbose
        python cli.py --service server --action stop
        python cli.py --service server --action status
        python cli.py --service worker --verbose
        python cli.py --service queue
        python cli.py --service token --user-id user-7 --role USER
        python cli.py --service health --debug
        python cli.py --service config
        python cli.py --service test --test-type unit --coverage
        python cli.py --service info
    """
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(level=log_level, format_type="console")

    bind_source("cli")

    logger = get_logger(__name__)

    logger.debug("CLI invoked", extra={"service": service, "action": action, "log_level": log_level})

    if service == "server" and action != "start":
        server_port = _get_server_port(port)

        if action == "stop":
            _server_stop(logger, server_port)
            return
        elif action == "status":
            _server_status(server_port)
            return
        elif action == "restart":
            _server_stop(logger, server_port)
            import time
            time.sleep(2)

    if service == "server":
        run_server(logger, host, port, reload)
    elif service == "worker":
        run_worker(logger)
    elif service == "queue":
        show_queue(logger)
    elif service == "token":
        mint_token(logger, user_id, role)
    elif service == "health":
        check_health(logger)
    elif service == "config":
        show_config(logger)
    elif service == "test":
        run_tests(logger, test_type, coverage)
    elif service == "info":
        show_info(logger)


def run_server(logger, host: str | None, port: int | None, reload: bool) -> None:
    """Start the FastAPI development server."""
    from storefront.backend.core.config import get_app_config

    try:
        server_config = get_app_config().application.server
    except Exception as e:
        logger.error("Failed to load configuration.", extra={"error": str(e)})
        click.echo(
            click.style("Error: Could not load config/settings/application.yaml.", fg="red"),
            err=True,
        )
        sys.exit(1)

    server_host = host or server_config.host
    server_port = port or server_config.port

    logger.info(
        "Starting server",
        extra={"host": server_host, "port": server_port, "reload": reload},
    )

    cmd = [
        sys.executable, "-m", "uvicorn",
        "storefront.backend.main:app",
        "--host", server_host,
        "--port", str(server_port),
    ]

    if reload:
        cmd.append("--reload")

    click.echo(f"Starting server at http://{server_host}:{server_port}")
    click.echo("Press Ctrl+C to stop\n")

    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        logger.info("Server stopped")
    except subprocess.CalledProcessError as e:
        logger.error("Server failed to start", extra={"exit_code": e.returncode})
        sys.exit(e.returncode)


def run_worker(logger) -> None:
    """Run the email worker standalone until SIGINT/SIGTERM.

    Set email_worker_enabled to false in features.yaml when running the
    worker this way, so the API process does not consume as well.
    """
    try:
        from storefront.backend.core.config import get_redis_url
        redis_url = get_redis_url()
        logger.debug("Redis configured", extra={"redis_url": redis_url.split("@")[-1]})
    except Exception as e:
        logger.error("Failed to load Redis configuration.", extra={"error": str(e)})
        click.echo(
            click.style(f"Error: Redis not configured: {e}", fg="red"),
            err=True,
        )
        sys.exit(1)

    click.echo("Starting email worker")
    click.echo("Press Ctrl+C to stop\n")

    asyncio.run(_run_worker(logger))


async def _run_worker(logger) -> None:
    """Start the worker and wait for a stop signal."""
    from storefront.backend.core.concurrency import shutdown_pools
    from storefront.backend.core.redis import close_redis
    from storefront.backend.notifications.worker import get_email_worker

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    worker = get_email_worker()
    worker.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Worker stopping")
        await worker.stop()
        await shutdown_pools()
        await close_redis()


def show_queue(logger) -> None:
    """Print email queue depth, scheduled retries and in-flight job ids."""
    from storefront.backend.core.redis import close_redis
    from storefront.backend.notifications.queue import get_email_queue

    async def _snapshot() -> list:
        queue = get_email_queue()
        try:
            return await asyncio.gather(queue.depth(), queue.delayed_count(), queue.in_flight_ids())
        finally:
            await close_redis()

    try:
        depth, delayed, in_flight = asyncio.run(_snapshot())
    except Exception as e:
        logger.error("Email queue unavailable", extra={"error": str(e)})
        click.echo(click.style(f"Error: could not read the email queue: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo("Email Queue:")
    click.echo("-" * 40)
    click.echo(f"  ready:     {depth}")
    click.echo(f"  delayed:   {delayed}")
    click.echo(f"  in flight: {len(in_flight)}")
    for job_id in in_flight:
        click.echo(f"    {job_id}")


def mint_token(logger, user_id: str, role: str) -> None:
    """Print a development bearer token for calling the poll endpoints and hooks."""
    from storefront.backend.core.security import issue_access_token

    try:
        token = issue_access_token(user_id, role.upper())
    except Exception as e:
        logger.error("Failed to mint token", extra={"error": str(e)})
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        click.echo("Note: JWT_SECRET must be set in config/.env.", err=True)
        sys.exit(1)

    logger.debug("Token minted", extra={"user_id": user_id, "role": role})
    click.echo(f"Authorization: Bearer {token}")


def check_health(logger) -> None:
    """Check application health by testing imports and configuration."""
    click.echo("Checking application health...\n")

    checks = []

    # Check 1: Core imports
    try:
        from storefront.backend.core.config import get_app_config, get_settings
        from storefront.backend.core.exceptions import ApplicationError
        checks.append(("Core imports", True, None))
        logger.debug("Core imports successful")
    except Exception as e:
        checks.append(("Core imports", False, str(e)))
        logger.error("Core imports failed", extra={"error": str(e)})

    # Check 2: Configuration loading
    try:
        app_config = get_app_config()
        app_name = app_config.application.name
        checks.append(("YAML configuration", True, f"App: {app_name}"))
        logger.debug("Configuration loaded", extra={"app_name": app_name})
    except Exception as e:
        checks.append(("YAML configuration", False, str(e)))
        logger.error("Configuration failed", extra={"error": str(e)})

    # Check 3: Secrets
    try:
        settings = get_settings()
        detail = "Resend key set" if settings.resend_api_key else "Resend key missing"
        checks.append(("Secrets (config/.env)", True, detail))
        logger.debug("Settings loaded")
    except Exception as e:
        checks.append(("Secrets (config/.env)", False, str(e)))
        logger.warning("Secrets not configured", extra={"error": str(e)})

    # Check 4: FastAPI app
    try:
        from storefront.backend.main import get_app
        app = get_app()
        checks.append(("FastAPI application", True, f"Title: {app.title}"))
        logger.debug("FastAPI app loaded", extra={"title": app.title})
    except Exception as e:
        checks.append(("FastAPI application", False, str(e)))
        logger.error("FastAPI app failed", extra={"error": str(e)})

    # Check 5: Redis
    try:
        from storefront.backend.core.redis import close_redis, get_redis

        async def _ping() -> None:
            try:
                await get_redis().ping()
            finally:
                await close_redis()

        asyncio.run(_ping())
        checks.append(("Redis", True, None))
        logger.debug("Redis reachable")
    except Exception as e:
        checks.append(("Redis", False, str(e)))
        logger.error("Redis check failed", extra={"error": str(e)})

    # Check 6: Email template
    try:
        from storefront.backend.notifications.mailer import NewOrderEmailRenderer
        renderer = NewOrderEmailRenderer(get_app_config().email.company)
        renderer.env.get_template(renderer.template_name)
        checks.append(("Email template", True, renderer.template_name))
        logger.debug("Email template loaded")
    except Exception as e:
        checks.append(("Email template", False, str(e)))
        logger.error("Email template failed", extra={"error": str(e)})

    # Display results
    click.echo("Health Check Results:")
    click.echo("-" * 50)

    all_passed = True
    for name, passed, detail in checks:
        status = click.style("✓ PASS", fg="green") if passed else click.style("✗ FAIL", fg="red")
        detail_str = f" ({detail})" if detail else ""
        click.echo(f"  {status}  {name}{detail_str}")
        if not passed:
            all_passed = False

    click.echo("-" * 50)

    if all_passed:
        click.echo(click.style("\nAll checks passed!", fg="green"))
    else:
        click.echo(click.style("\nSome checks failed. See details above.", fg="yellow"))
        click.echo("Note: Secrets require config/.env (see config/.env.example).")


def _echo_section(title: str, model) -> None:
    click.echo(f"\n{title}:")
    click.echo("-" * 40)
    for key, value in model.model_dump().items():
        if isinstance(value, dict):
            click.echo(f"  {key}:")
            for k, v in value.items():
                click.echo(f"    {k}: {v}")
        else:
            click.echo(f"  {key}: {value}")


def show_config(logger) -> None:
    """Display loaded configuration."""
    click.echo("Application Configuration:")

    try:
        from storefront.backend.core.config import get_app_config

        app_config = get_app_config()

        _echo_section("Application Settings (from YAML)", app_config.application)
        _echo_section("Redis Settings (from YAML)", app_config.redis)
        _echo_section("Logging Settings (from YAML)", app_config.logging)
        _echo_section("Feature Flags (from YAML)", app_config.features)
        _echo_section("Poll Events (from YAML)", app_config.events)
        _echo_section("Email Queue (from YAML)", app_config.email)

        logger.info("Configuration displayed successfully")

    except Exception as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        click.echo(click.style(f"Error loading configuration: {e}", fg="red"))
        sys.exit(1)


def run_tests(logger, test_type: str, coverage: bool) -> None:
    """Run the test suite."""
    logger.info("Running tests", extra={"type": test_type, "coverage": coverage})

    cmd = [sys.executable, "-m", "pytest"]

    if test_type == "unit":
        cmd.append("tests/unit")
    elif test_type == "integration":
        cmd.append("tests/integration")
    else:
        cmd.append("tests/")

    cmd.append("-v")

    if coverage:
        cmd.extend(["--cov=storefront/backend", "--cov-report=term-missing"])

    click.echo(f"Running: {' '.join(cmd)}\n")

    try:
        result = subprocess.run(cmd)
        sys.exit(result.returncode)
    except FileNotFoundError:
        logger.error("pytest not found. Install with: pip install -e '.[test]'")
        sys.exit(1)


def show_info(logger) -> None:
    """Display application information."""
    click.echo("Storefront Notify")
    click.echo("=" * 40)

    try:
        from storefront.backend.core.config import get_app_config
        app_config = get_app_config()
        click.echo(f"Name: {app_config.application.name}")
        click.echo(f"Version: {app_config.application.version}")
        click.echo(f"Description: {app_config.application.description}")
    except Exception as e:
        logger.error(
            "Failed to load application configuration",
            extra={"error": str(e)},
        )
        click.echo(
            click.style(
                "Error: Could not load application.yaml configuration.",
                fg="red",
            ),
            err=True,
        )
        sys.exit(1)

    click.echo()
    click.echo("Services (--service):")
    click.echo("  server         FastAPI server (poll endpoints, order hooks, in-process worker)")
    click.echo("  worker         Standalone email worker")
    click.echo("  queue          Show email queue depth and in-flight jobs")
    click.echo("  token          Mint a development bearer token")
    click.echo("  health         Check application health")
    click.echo("  config         Display configuration")
    click.echo("  test           Run test suite")
    click.echo("  info           Show this information")
    click.echo()
    click.echo("Lifecycle actions (--action, server only):")
    click.echo("  start          Start the server (default)")
    click.echo("  stop           Stop a running server")
    click.echo("  restart        Stop then start")
    click.echo("  status         Check if running")
    click.echo()
    click.echo("Options:")
    click.echo("  --verbose, -v  Enable INFO level logging")
    click.echo("  --debug, -d    Enable DEBUG level logging")
    click.echo()
    click.echo("Examples:")
    click.echo("  python cli.py --service server --reload --verbose")
    click.echo("  python cli.py --service server --action status")
    click.echo("  python cli.py --service worker --verbose")
    click.echo("  python cli.py --service token --user-id user-7 --role USER")
    click.echo("  python cli.py --service health --debug")
    click.echo("  python cli.py --service test --test-type unit --coverage")

    logger.debug("Info displayed")


if __name__ == "__main__":
    main()
