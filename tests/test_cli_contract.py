import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from slsa_builder.cli import app
from slsa_builder.codec import decode_list, encode_list
from slsa_builder.signing import DSSESigner

from helpers import BUILDER_ID, FakeIdentityProvider, FakeSigningContext

runner = CliRunner()

VALID_CONFIG = """\
version: 1
steps:
  - command: ["go", "build", "-trimpath"]
    env:
      - CGO_ENABLED=0
      - GOARCH
"""

DIGEST = "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


def _read_outputs(path: Path) -> dict:
    lines = path.read_text(encoding="utf-8").splitlines()
    return dict(line.split("=", 1) for line in lines)


def test_version_json_contract() -> None:
    result = runner.invoke(app, ["version", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["ok"] is True
    assert isinstance(payload["version"], str)


def test_build_dry_run_sets_outputs(monkeypatch: pytest.MonkeyPatch) -> None:
    with runner.isolated_filesystem():
        Path("builder.yml").write_text(VALID_CONFIG, encoding="utf-8")
        output_file = Path("github_output").resolve()
        monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
        monkeypatch.delenv("GOARCH", raising=False)

        result = runner.invoke(
            app,
            [
                "build",
                "builder.yml",
                "GOARCH:amd64",
                "--dry",
                "--compiler",
                "/usr/local/go/bin/go",
                "--json",
            ],
        )
        assert result.exit_code == 0, result.stdout
        out = json.loads(result.stdout)
        assert out["ok"] is True
        assert out["dry_run"] is True
        assert out["command"] == ["/usr/local/go/bin/go", "build", "-trimpath"]
        assert out["env"] == ["CGO_ENABLED=0", "GOARCH=amd64"]

        outputs = _read_outputs(output_file)
        assert decode_list(outputs["command"]) == out["command"]
        assert decode_list(outputs["env"]) == out["env"]


def test_build_rejects_invalid_config() -> None:
    with runner.isolated_filesystem():
        Path("builder.yml").write_text("version: 2\nsteps: []\n", encoding="utf-8")
        result = runner.invoke(app, ["build", "builder.yml", "--dry", "--json"])
        assert result.exit_code == 1
        out = json.loads(result.stdout)
        assert out["ok"] is False
        assert out["command"] == "build"
        assert "version" in out["error"]


def test_build_rejects_config_outside_working_directory(tmp_path: Path) -> None:
    outside = tmp_path / "builder.yml"
    outside.write_text(VALID_CONFIG, encoding="utf-8")
    with runner.isolated_filesystem():
        result = runner.invoke(app, ["build", str(outside), "--dry", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["ok"] is False


def test_provenance_requires_github_context(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_CONTEXT", raising=False)
    result = runner.invoke(
        app,
        [
            "provenance",
            "--binary-name",
            "binary",
            "--digest",
            DIGEST,
            "--command",
            encode_list(["go", "build"]),
            "--json",
        ],
    )
    assert result.exit_code == 1
    out = json.loads(result.stdout)
    assert out == {
        "ok": False,
        "command": "provenance",
        "error": "environment variable GITHUB_CONTEXT not present",
    }


def test_provenance_rejects_invalid_digest(monkeypatch: pytest.MonkeyPatch, github_context) -> None:
    monkeypatch.setenv("GITHUB_CONTEXT", json.dumps(github_context))
    result = runner.invoke(
        app,
        [
            "provenance",
            "--binary-name",
            "binary",
            "--digest",
            "not-a-digest",
            "--command",
            encode_list(["go", "build"]),
            "--json",
        ],
    )
    assert result.exit_code == 1
    out = json.loads(result.stdout)
    assert out["ok"] is False
    assert "digest" in out["error"]


def test_provenance_writes_signed_envelope(
    monkeypatch: pytest.MonkeyPatch, github_context
) -> None:
    signing_context = FakeSigningContext(log_index=1234)
    monkeypatch.setattr(
        "slsa_builder.cli.IdentityProvider", lambda **kwargs: FakeIdentityProvider()
    )
    monkeypatch.setattr(
        "slsa_builder.cli.DSSESigner",
        lambda endpoints: DSSESigner(endpoints, signing_context=signing_context),
    )
    monkeypatch.setenv("GITHUB_CONTEXT", json.dumps(github_context))
    with runner.isolated_filesystem():
        output_file = Path("github_output").resolve()
        monkeypatch.setenv("GITHUB_OUTPUT", str(output_file))
        result = runner.invoke(
            app,
            [
                "provenance",
                "--binary-name",
                "binary-linux-amd64",
                "--digest",
                DIGEST,
                "--command",
                encode_list(["/usr/local/go/bin/go", "build"]),
                "--env",
                encode_list(["CGO_ENABLED=0"]),
                "--json",
            ],
        )
        assert result.exit_code == 0, result.stdout
        out = json.loads(result.stdout)
        assert out["ok"] is True
        assert out["builder_id"] == BUILDER_ID
        assert out["transparency_log"] == {"log_index": 1234, "integrated_time": 1700000000}

        written = Path("binary-linux-amd64.intoto.jsonl")
        envelope = json.loads(written.read_text(encoding="utf-8"))
        assert envelope["dsseEnvelope"]["payloadType"] == "application/vnd.in-toto+json"
        assert len(signing_context.statements) == 1
        outputs = _read_outputs(output_file)
        assert outputs["signed-provenance-name"] == "binary-linux-amd64.intoto.jsonl"


def test_context_json_omits_token(monkeypatch: pytest.MonkeyPatch, github_context) -> None:
    monkeypatch.setenv("GITHUB_CONTEXT", json.dumps(github_context))
    result = runner.invoke(app, ["context", "--json"])
    assert result.exit_code == 0
    out = json.loads(result.stdout)
    assert out["ok"] is True
    assert out["context"]["repository"] == "octo-org/octo-app"
    assert "token" not in out["context"]
    assert "ghs_secretsecretsecret" not in result.stdout
