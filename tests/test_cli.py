"""Tests for atlas_prov.cli."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from atlas_prov import cli
from atlas_prov.config.models import ProvisionerConfig
from atlas_prov.gateway.context import AtlasCredentials, CredentialsError
from atlas_prov.state.models import ErrorCategory, Operation, Outcome

runner = CliRunner()

MODEL = {"ProjectId": "p1", "Name": "c0", "ApiKeys": {"PublicKey": "pub", "PrivateKey": "priv"}}


@pytest.fixture(autouse=True)
def _no_env(monkeypatch):
    monkeypatch.delenv("ATLAS_PROV_CONFIG", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    with patch("atlas_prov.cli.configure_logging"):
        yield


def _invoke(args, outcome=None):
    controller = MagicMock()
    if outcome is not None:
        controller.step.return_value = outcome
        controller.read.return_value = outcome
        controller.list.return_value = outcome
    with patch("atlas_prov.cli._controller", return_value=controller) as factory:
        result = runner.invoke(cli.app, args)
    return result, controller, factory


# ── step ─────────────────────────────────────────────────────────────────────


class TestStep:
    def test_in_progress_json(self):
        outcome = Outcome.in_progress({"v": 1, "phase": "CREATING"}, 20, "Creating")
        result, controller, _ = _invoke(
            ["step", "cluster", "create", "-m", json.dumps(MODEL), "--json"], outcome
        )
        assert result.exit_code == cli.EXIT_IN_PROGRESS
        payload = json.loads(result.stdout)
        assert payload["status"] == "IN_PROGRESS"
        assert payload["retryDelaySeconds"] == 20
        assert payload["continuationContext"] == {"v": 1, "phase": "CREATING"}
        controller.step.assert_called_once_with(Operation.CREATE, None, MODEL)

    def test_context_is_passed_through(self):
        ctx = {"v": 1, "family": "cluster", "operation": "create", "phase": "CREATING"}
        result, controller, _ = _invoke(
            ["step", "cluster", "create", "-m", json.dumps(MODEL), "-c", json.dumps(ctx), "-j"],
            Outcome.success({"Name": "c0"}),
        )
        assert result.exit_code == cli.EXIT_SUCCESS
        controller.step.assert_called_once_with(Operation.CREATE, ctx, MODEL)

    def test_model_from_file(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps(MODEL))
        result, controller, _ = _invoke(
            ["step", "cluster", "delete", "-m", f"@{path}", "-j"], Outcome.success()
        )
        assert result.exit_code == cli.EXIT_SUCCESS
        assert controller.step.call_args[0][2] == MODEL

    def test_failed_exit_code(self):
        outcome = Outcome.failed("quota", ErrorCategory.GENERAL_SERVICE_EXCEPTION)
        result, _, _ = _invoke(["step", "cluster", "create", "-m", "{}", "-j"], outcome)
        assert result.exit_code == cli.EXIT_FAILED
        assert json.loads(result.stdout)["errorCategory"] == "GeneralServiceException"

    def test_human_output(self):
        outcome = Outcome.in_progress({"v": 1, "phase": "CREATING"}, 20, "Creating")
        result, _, _ = _invoke(["step", "cluster", "create", "-m", "{}"], outcome)
        assert result.exit_code == cli.EXIT_IN_PROGRESS
        assert "Creating" in result.stdout
        assert "--context" in result.stdout

    def test_bad_json_model(self):
        result, _, factory = _invoke(["step", "cluster", "create", "-m", "{nope"])
        assert result.exit_code == cli.EXIT_USAGE
        factory.assert_not_called()

    def test_model_must_be_object(self):
        result, _, factory = _invoke(["step", "cluster", "create", "-m", "[1, 2]"])
        assert result.exit_code == cli.EXIT_USAGE
        factory.assert_not_called()

    def test_missing_model_file(self, tmp_path):
        result, _, _ = _invoke(
            ["step", "cluster", "create", "-m", f"@{tmp_path / 'absent.json'}"]
        )
        assert result.exit_code == cli.EXIT_USAGE

    def test_unknown_family(self):
        result, _, factory = _invoke(["step", "serverless", "create", "-m", "{}"])
        assert result.exit_code == cli.EXIT_USAGE
        factory.assert_not_called()

    def test_unknown_operation(self):
        result, _, factory = _invoke(["step", "cluster", "restart", "-m", "{}"])
        assert result.exit_code == cli.EXIT_USAGE
        factory.assert_not_called()

    def test_bad_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("provisioner:\n  default_timeout: [1, 2]\n")
        result, _, factory = _invoke(
            ["step", "cluster", "create", "-m", "{}", "--config", str(path)]
        )
        assert result.exit_code == cli.EXIT_USAGE
        factory.assert_not_called()


# ── read / list / version ────────────────────────────────────────────────────


class TestReadList:
    def test_read(self):
        result, controller, _ = _invoke(
            ["read", "stream-processor", "-m", '{"ProjectId": "p1"}', "-j"],
            Outcome.success({"ProcessorName": "proc"}),
        )
        assert result.exit_code == cli.EXIT_SUCCESS
        assert json.loads(result.stdout)["model"] == {"ProcessorName": "proc"}
        controller.read.assert_called_once_with({"ProjectId": "p1"})

    def test_list(self):
        result, controller, _ = _invoke(
            ["list", "export-job", "-m", '{"GroupId": "p1"}', "-j"],
            Outcome.success(models=[{"ExportId": "a"}], message="List complete"),
        )
        assert result.exit_code == cli.EXIT_SUCCESS
        assert json.loads(result.stdout)["models"] == [{"ExportId": "a"}]
        controller.list.assert_called_once_with({"GroupId": "p1"})

    def test_list_human_output(self):
        result, _, _ = _invoke(
            ["list", "export-job", "-m", "{}"],
            Outcome.success(models=[{"ExportId": "a"}], message="List complete"),
        )
        assert "List complete (1 resources)" in result.stdout

    def test_version(self):
        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert result.stdout.strip() == cli.__version__


# ── controller wiring ────────────────────────────────────────────────────────


class TestControllerFactory:
    def test_wires_client_and_policy(self):
        config = ProvisionerConfig()
        creds = AtlasCredentials("pub", "priv", base_url="https://cloud-dev.example.com")
        with patch("atlas_prov.cli.AtlasCredentials.resolve", return_value=creds), \
                patch("atlas_prov.cli.AtlasClient") as client_cls, \
                patch("atlas_prov.cli.build_policy") as build:
            build.return_value.config = config
            controller = cli._controller("cluster", MODEL, config, "dev", "us-west-2")

        public, private, api = client_cls.call_args[0]
        assert (public, private) == ("pub", "priv")
        assert api.base_url == "https://cloud-dev.example.com"
        family, client, aws, passed_config = build.call_args[0]
        assert family == "cluster"
        assert client is client_cls.return_value
        assert (aws.region, aws.profile) == ("us-west-2", "dev")
        assert passed_config is config
        assert controller.policy is build.return_value

    def test_missing_credentials_exit(self):
        with patch(
            "atlas_prov.cli.AtlasCredentials.resolve",
            side_effect=CredentialsError("No Atlas API keys"),
        ):
            with pytest.raises(typer.Exit) as info:
                cli._controller("cluster", {}, ProvisionerConfig(), None, "us-east-1")
        assert info.value.exit_code == cli.EXIT_USAGE
