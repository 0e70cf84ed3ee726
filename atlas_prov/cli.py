"""CLI entry point for atlas-prov.

Runs one provisioning step at a time against the live Atlas (and AWS)
APIs.  A step that is still in progress prints its continuation context;
feed it back with ``--context`` after the suggested delay.

Usage::

    atlas-prov step cluster create --model @cluster.json
    atlas-prov step cluster create --model @cluster.json --context '{"v": 1, ...}'
    atlas-prov read stream-processor --model @processor.json
    atlas-prov list export-job --model '{"GroupId": "...", "ClusterName": "c0"}'

Exit codes: 0 = success, 1 = failed, 2 = usage or config error,
3 = still in progress.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from atlas_prov import __version__, ui
from atlas_prov.config.loader import ConfigError, configure_logging, load_config
from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.atlas import AtlasClient
from atlas_prov.gateway.context import AtlasCredentials, AWSContext, CredentialsError
from atlas_prov.resources import FAMILIES, build_policy
from atlas_prov.state.models import Operation, Outcome, OperationStatus
from atlas_prov.workflow.controller import ProvisioningController

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_IN_PROGRESS = 3

_EXIT_FOR_STATUS = {
    OperationStatus.SUCCESS: EXIT_SUCCESS,
    OperationStatus.FAILED: EXIT_FAILED,
    OperationStatus.IN_PROGRESS: EXIT_IN_PROGRESS,
}

app = typer.Typer(
    name="atlas-prov",
    help="Drive MongoDB Atlas resources through their provisioning lifecycles.",
    no_args_is_help=True,
    add_completion=False,
)


# ── Shared helpers ───────────────────────────────────────────────────────────


def _load_json(value: Optional[str], what: str) -> Dict[str, Any]:
    """Parse a JSON object given inline or as ``@path``."""
    if not value:
        return {}
    text = value
    if value.startswith("@"):
        path = Path(value[1:])
        if not path.is_file():
            raise typer.BadParameter(f"{what} file not found: {path}")
        text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise typer.BadParameter(f"{what} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{what} must be a JSON object")
    return data


def _check_family(family: str) -> str:
    if family not in FAMILIES:
        raise typer.BadParameter(
            f"unknown family {family!r}; expected one of {', '.join(FAMILIES)}"
        )
    return family


def _bootstrap(config_path: Optional[str], log_level: Optional[str]) -> ProvisionerConfig:
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        ui.error_msg(str(exc))
        raise typer.Exit(EXIT_USAGE) from exc
    configure_logging(log_level or config.log_level)
    return config


def _controller(
    family: str,
    model: Dict[str, Any],
    config: ProvisionerConfig,
    profile: Optional[str],
    region: Optional[str],
) -> ProvisioningController:
    aws = AWSContext.build(region or config.aws_region, profile)
    try:
        creds = AtlasCredentials.resolve(model, aws, config.secret_prefix)
    except CredentialsError as exc:
        ui.error_msg(str(exc))
        raise typer.Exit(EXIT_USAGE) from exc

    api = config.atlas
    if creds.base_url:
        api = api.model_copy(update={"base_url": creds.base_url})
    client = AtlasClient(creds.public_key, creds.private_key, api)
    return ProvisioningController(build_policy(family, client, aws, config), config=config)


def _emit(outcome: Outcome, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(outcome.to_response(), indent=2, default=str))
    else:
        ui.render_outcome(outcome)
    raise typer.Exit(_EXIT_FOR_STATUS[outcome.status])


# ── Common options ───────────────────────────────────────────────────────────

_MODEL_OPT = typer.Option(
    None, "--model", "-m", help="Desired model as JSON, or @path to a JSON file."
)
_PROFILE_OPT = typer.Option(
    None, "--profile", help="AWS CLI profile. Defaults to the standard chain."
)
_REGION_OPT = typer.Option(None, "--region", help="AWS region for Secrets Manager / EC2.")
_CONFIG_OPT = typer.Option(
    None, "--config", help="Provisioner config YAML. Default: $ATLAS_PROV_CONFIG."
)
_LOG_LEVEL_OPT = typer.Option(None, "--log-level", help="Logging level (default INFO).")
_JSON_OPT = typer.Option(False, "--json", "-j", help="Print the raw outcome as JSON.")


# ── step command ─────────────────────────────────────────────────────────────


@app.command()
def step(
    family: str = typer.Argument(..., help=f"One of: {', '.join(FAMILIES)}."),
    operation: Operation = typer.Argument(..., help="create, update or delete."),
    model: Optional[str] = _MODEL_OPT,
    context: Optional[str] = typer.Option(
        None,
        "--context",
        "-c",
        help="Continuation context from the previous step (JSON or @path).",
    ),
    profile: Optional[str] = _PROFILE_OPT,
    region: Optional[str] = _REGION_OPT,
    config: Optional[str] = _CONFIG_OPT,
    log_level: Optional[str] = _LOG_LEVEL_OPT,
    json_flag: bool = _JSON_OPT,
) -> None:
    """Run one invocation of OPERATION on a FAMILY resource."""
    _check_family(family)
    desired = _load_json(model, "--model")
    raw_context = _load_json(context, "--context")
    cfg = _bootstrap(config, log_level)

    if not json_flag:
        ui.phase(f"{family.upper()} {operation.value.upper()}")
        if raw_context:
            ui.info(f"Resuming phase {raw_context.get('phase')}")

    controller = _controller(family, desired, cfg, profile, region)
    _emit(controller.step(operation, raw_context or None, desired), json_flag)


# ── read command ─────────────────────────────────────────────────────────────


@app.command()
def read(
    family: str = typer.Argument(..., help=f"One of: {', '.join(FAMILIES)}."),
    model: Optional[str] = _MODEL_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    region: Optional[str] = _REGION_OPT,
    config: Optional[str] = _CONFIG_OPT,
    log_level: Optional[str] = _LOG_LEVEL_OPT,
    json_flag: bool = _JSON_OPT,
) -> None:
    """Read the current state of one resource."""
    _check_family(family)
    desired = _load_json(model, "--model")
    cfg = _bootstrap(config, log_level)
    _emit(_controller(family, desired, cfg, profile, region).read(desired), json_flag)


# ── list command ─────────────────────────────────────────────────────────────


@app.command("list")
def list_(
    family: str = typer.Argument(..., help=f"One of: {', '.join(FAMILIES)}."),
    model: Optional[str] = _MODEL_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    region: Optional[str] = _REGION_OPT,
    config: Optional[str] = _CONFIG_OPT,
    log_level: Optional[str] = _LOG_LEVEL_OPT,
    json_flag: bool = _JSON_OPT,
) -> None:
    """List resources of FAMILY in the scope named by the model."""
    _check_family(family)
    desired = _load_json(model, "--model")
    cfg = _bootstrap(config, log_level)
    _emit(_controller(family, desired, cfg, profile, region).list(desired), json_flag)


# ── version command ──────────────────────────────────────────────────────────


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(__version__)


# ── Entry point ──────────────────────────────────────────────────────────────


def main() -> int:
    """Run the CLI and return an exit code."""
    try:
        app()
        return 0
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
