"""Command-line entry point for one bridge run."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Mapping
from pathlib import Path

import httpx

from jobbridge.core.errors import BridgeError, ConfigurationError
from jobbridge.core.runner import BridgeRunner, RunReport
from jobbridge.host.client import HostAPIClient, HostError
from jobbridge.models.config import BridgeConfig

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("jobbridge")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobbridge",
        description="Report a build status to the code host and trigger the downstream job",
    )
    parser.add_argument(
        "--env-file",
        help=".env file read beneath the process environment",
    )
    parser.add_argument(
        "--mode",
        choices=("job", "pipeline"),
        help="Play a resolved job or trigger a new pipeline for a ref",
    )
    parser.add_argument("--log-level", help="Logging level (overrides log_level)")
    return parser


def _configure_logging(level: str) -> None:
    # No-op when the root logger already has handlers.
    logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
    logger.setLevel(level)


def load_config(args: argparse.Namespace, environ: Mapping[str, str] | None) -> BridgeConfig:
    values = dict(environ or {})
    env_file: Path | None = None
    if args.env_file:
        env_file = Path(args.env_file)
        if not env_file.is_file():
            msg = f"Env file not found: {env_file}"
            raise ConfigurationError(msg, keys=["--env-file"])
    if args.mode:
        values["trigger_mode"] = args.mode
    if args.log_level:
        values["log_level"] = args.log_level
    return BridgeConfig.from_env(values, env_file=env_file)


async def run_bridge(
    config: BridgeConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RunReport:
    async with HostAPIClient(
        api_url=config.api_url,
        graphql_url=config.graphql_url or "",
        token=config.token.get_secret_value(),
        timeout=config.request_timeout,
        transport=transport,
    ) as client:
        return await BridgeRunner(config, client).run()


def _report_failure(exc: BridgeError) -> None:
    logger.error("%s failed: %s", exc.stage, exc)
    if isinstance(exc, HostError):
        if exc.outcome_unknown:
            logger.error("The host may have applied the request; not retrying")
        if exc.body:
            logger.error("Host response body: %s", exc.body)


def main(
    argv: list[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    args = _build_parser().parse_args(argv)
    try:
        config = load_config(args, environ)
    except ConfigurationError as exc:
        _configure_logging("INFO")
        _report_failure(exc)
        return EXIT_CONFIGURATION

    _configure_logging(config.log_level)
    logger.info(
        "Project %s, mode %s, job %r",
        config.project_path,
        config.trigger_mode,
        config.job_name,
    )
    try:
        report = asyncio.run(run_bridge(config, transport=transport))
    except ConfigurationError as exc:
        _report_failure(exc)
        return EXIT_CONFIGURATION
    except BridgeError as exc:
        _report_failure(exc)
        return EXIT_FAILURE

    status = report.status.value if report.status is not None else "-"
    logger.info("Done: status=%s published=%s triggered=%s", status, report.published, report.triggered)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
