"""Tests for CLI parser and command handlers."""

from argparse import Namespace
from pathlib import Path
from types import SimpleNamespace

import yaml

from buildmq.cli import commands
from buildmq.cli.main import create_parser, main
from buildmq.dispatcher import PublishResult


def _write_config(tmp_path: Path, data: dict) -> Path:
    config_dir = tmp_path / ".buildmq"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


class _FakeHooks:
    def __init__(self, results=None, config_errors=None):
        self.results = list(results or [])
        self.config_errors = list(config_errors or [])
        self.dispatcher = SimpleNamespace(dry_run=False)
        self.calls = []

    def on_job_finished(self, **kwargs):
        self.calls.append(("finished", kwargs))
        return list(self.results)

    def on_job_queued(self, **kwargs):
        self.calls.append(("queued", kwargs))
        return list(self.results)

    def on_explicit_publish(self, **kwargs):
        self.calls.append(("publish", kwargs))
        return self.results[0]


def _install_hooks(monkeypatch, hooks):
    monkeypatch.setattr(commands, "get_configured_config", lambda _args: object())
    monkeypatch.setattr(
        commands,
        "EventHooks",
        SimpleNamespace(from_config=lambda _config: hooks),
    )


# =============================================================================
# Parser
# =============================================================================

def test_parser_publish_args():
    """Parser accepts publish options."""
    args = create_parser().parse_args(
        [
            "publish",
            "--destination",
            "rabbit-1",
            "--exchange",
            "builds",
            "--routing-key",
            "builds.done",
            "--data",
            "status=${STATUS}",
            "--json",
            "--no-conversion",
            "--user-id",
            "alice",
            "--param",
            "STATUS=ok",
            "--param",
            "BRANCH=main",
            "--dry-run",
        ]
    )
    assert args.command == "publish"
    assert args.destination == "rabbit-1"
    assert args.exchange == "builds"
    assert args.routing_key == "builds.done"
    assert args.data == "status=${STATUS}"
    assert args.json is True
    assert args.no_conversion is True
    assert args.user_id == "alice"
    assert args.param == ["STATUS=ok", "BRANCH=main"]
    assert args.dry_run is True


def test_parser_notify_args():
    """Parser accepts notify options."""
    parser = create_parser()
    args = parser.parse_args(
        ["notify", "finished", "--job-name", "JJB_x", "--run-id", "7", "--url", "http://ci/7/", "--strict"]
    )
    assert args.notify_action == "finished"
    assert args.result == "FAILURE"
    assert args.strict is True

    args = parser.parse_args(["notify", "queued", "--queue-id", "42", "--job-name", "JJB_x"])
    assert args.notify_action == "queued"
    assert args.queue_id == 42
    assert args.url is None


def test_parse_params_skips_invalid(capsys):
    assert commands._parse_params(["A=1", "broken", "B=x=y", " =z"]) == {"A": "1", "B": "x=y"}
    assert "Ignoring 'broken'" in capsys.readouterr().out


def test_exit_code_policy():
    assert commands._compute_notification_exit_code(0, 0, strict=True) == 0
    assert commands._compute_notification_exit_code(1, 2, strict=False) == 0
    assert commands._compute_notification_exit_code(1, 2, strict=True) == 1
    assert commands._compute_notification_exit_code(0, 2, strict=False) == 1


# =============================================================================
# validate / init
# =============================================================================

def test_validate_ok(capsys):
    assert main(["validate", "key_1=value_1\nkey_2=value_2"]) == 0
    assert capsys.readouterr().out.strip() == "OK"


def test_validate_reports_kind(capsys):
    assert main(["validate", "key_1=value_1\nnot a pair"]) == 1
    assert "Error (MalformedLine)" in capsys.readouterr().out


def test_validate_from_file(tmp_path, capsys):
    path = tmp_path / "data.txt"
    path.write_text("=value\n", encoding="utf-8")
    assert main(["validate", "--file", str(path)]) == 1
    assert "Error (EmptyKey)" in capsys.readouterr().out


def test_cmd_init_writes_sample_destination(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    assert commands.cmd_init(Namespace(force=False, root_url="https://ci.example.com/")) == 0
    assert commands.cmd_init(Namespace(force=False, root_url="")) == 1

    with open(tmp_path / ".buildmq" / "config.yaml", "r") as f:
        data = yaml.safe_load(f)
    assert data["root_url"] == "https://ci.example.com/"
    assert data["destinations"][0]["name"] == "rabbit-default"
    assert data["destinations"][0]["password"] == "${BUILDMQ_RABBIT_PASSWORD}"


# =============================================================================
# destinations
# =============================================================================

def test_destinations_list(tmp_path, capsys):
    path = _write_config(
        tmp_path,
        {
            "destinations": [
                {"name": "rabbit-1", "host": "mq1", "username": "u", "on_finish": True},
                {"name": "rabbit-2", "host": "mq2", "username": "u", "port": "bad"},
            ]
        },
    )

    exit_code = commands.cmd_destinations_list(Namespace(config=str(path), verbose=0, ui="plain"))

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "rabbit-1" in out
    assert "mq1:5672" in out
    assert "'port' is not a number" in out


def test_destinations_test_uses_publisher(monkeypatch, tmp_path, capsys):
    path = _write_config(
        tmp_path,
        {
            "destinations": [
                {"name": "up", "host": "mq1", "username": "u"},
                {"name": "down", "host": "mq2", "username": "u"},
            ]
        },
    )

    class _FakePublisher:
        def check_connection(self, destination):
            if destination.name == "up":
                return True, "Connection success"
            return False, "Client error : Connection failed"

    monkeypatch.setattr(commands, "Publisher", _FakePublisher)

    exit_code = commands.cmd_destinations_test(
        Namespace(config=str(path), verbose=0, ui="plain", name=["up", "ghost"])
    )

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "Connection success" in out
    assert "Client error" not in out
    assert "Unknown destination 'ghost'." in out


# =============================================================================
# notify
# =============================================================================

def _notify_finished_args(**overrides):
    values = {
        "job_name": "JJB_build",
        "run_id": "7",
        "url": "http://ci/job/JJB_build/7/",
        "result": "FAILURE",
        "param": ["projectId=p1"],
        "strict": False,
        "dry_run": False,
    }
    values.update(overrides)
    return Namespace(**values)


def test_notify_finished_passes_context(monkeypatch, capsys):
    hooks = _FakeHooks(results=[PublishResult(destination="rabbit-1", success=True)])
    _install_hooks(monkeypatch, hooks)

    assert commands.cmd_notify_finished(_notify_finished_args()) == 0

    action, kwargs = hooks.calls[0]
    assert action == "finished"
    assert kwargs["parameters"] == {"projectId": "p1"}
    assert kwargs["run_url"] == "http://ci/job/JJB_build/7/"
    assert "[ok] rabbit-1 - sent" in capsys.readouterr().out


def test_notify_finished_no_destinations(monkeypatch, capsys):
    _install_hooks(monkeypatch, _FakeHooks())

    assert commands.cmd_notify_finished(_notify_finished_args()) == 0
    assert "No destinations matched this event." in capsys.readouterr().out


def test_notify_strict_partial_failure(monkeypatch, capsys):
    hooks = _FakeHooks(
        results=[
            PublishResult(destination="a", success=True),
            PublishResult(destination="b", success=False, error="Timeout"),
        ]
    )
    _install_hooks(monkeypatch, hooks)

    assert commands.cmd_notify_finished(_notify_finished_args()) == 0
    assert commands.cmd_notify_finished(_notify_finished_args(strict=True)) == 1
    assert "[failed] b - Timeout" in capsys.readouterr().out


def test_notify_queued_dry_run(monkeypatch, capsys):
    hooks = _FakeHooks(results=[PublishResult(destination="q", success=True, dry_run=True)])
    _install_hooks(monkeypatch, hooks)

    args = Namespace(queue_id=42, job_name="JJB_build", url=None, param=None, strict=False, dry_run=True)
    assert commands.cmd_notify_queued(args) == 0

    assert hooks.dispatcher.dry_run is True
    action, kwargs = hooks.calls[0]
    assert action == "queued"
    assert kwargs["queue_id"] == 42
    assert kwargs["queue_url"] is None
    assert "dry-run, nothing sent" in capsys.readouterr().out


def test_notify_config_errors_count_as_failures(monkeypatch, capsys):
    _install_hooks(monkeypatch, _FakeHooks(config_errors=["Destination 'x' field 'port' is not a number."]))

    assert commands.cmd_notify_finished(_notify_finished_args()) == 1
    assert "[config-error]" in capsys.readouterr().out


# =============================================================================
# publish
# =============================================================================

def _publish_args(**overrides):
    values = {
        "destination": "rabbit-1",
        "exchange": None,
        "routing_key": None,
        "data": "status=$STATUS",
        "data_file": None,
        "json": True,
        "no_conversion": False,
        "user_id": None,
        "user_name": None,
        "param": ["STATUS=ok"],
        "dry_run": False,
    }
    values.update(overrides)
    return Namespace(**values)


def test_publish_forwards_request(monkeypatch):
    hooks = _FakeHooks(results=[PublishResult(destination="rabbit-1", success=True)])
    _install_hooks(monkeypatch, hooks)

    assert commands.cmd_publish(_publish_args(user_id="alice", user_name="Alice")) == 0

    _, kwargs = hooks.calls[0]
    assert kwargs["destination_name"] == "rabbit-1"
    assert kwargs["template"] == "status=$STATUS"
    assert kwargs["mode"] == "json"
    assert kwargs["build_parameters"] == {"STATUS": "ok"}
    assert kwargs["user"].user_id == "alice"
    assert kwargs["conversion"] is True


def test_publish_raw_from_file(monkeypatch, tmp_path):
    template = tmp_path / "message.txt"
    template.write_text("build $STATUS", encoding="utf-8")
    hooks = _FakeHooks(results=[PublishResult(destination="rabbit-1", success=False, error="Timeout")])
    _install_hooks(monkeypatch, hooks)

    args = _publish_args(data=None, data_file=str(template), json=False, no_conversion=True)
    assert commands.cmd_publish(args) == 1

    _, kwargs = hooks.calls[0]
    assert kwargs["template"] == "build $STATUS"
    assert kwargs["mode"] == "raw"
    assert kwargs["conversion"] is False


def test_publish_dry_run_previews_message(monkeypatch, capsys):
    hooks = _FakeHooks(results=[PublishResult(destination="rabbit-1", success=True, dry_run=True)])
    _install_hooks(monkeypatch, hooks)

    assert commands.cmd_publish(_publish_args(dry_run=True)) == 0

    out = capsys.readouterr().out
    assert '"status":"ok"' in out
    assert hooks.dispatcher.dry_run is True


def test_main_reports_invalid_config(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("- not\n- a mapping\n")

    assert main(["--config", str(path), "destinations", "list"]) == 1
    assert "must contain a mapping" in capsys.readouterr().out


def test_main_reports_malformed_yaml(tmp_path, capsys):
    path = tmp_path / "config.yaml"
    path.write_text("destinations: [unclosed\n")

    assert main(["--config", str(path), "notify", "queued", "--queue-id", "1", "--job-name", "JJB_x"]) == 1
    assert "not valid YAML" in capsys.readouterr().out


def test_publish_dry_run_preview_omits_environment(monkeypatch, capsys):
    monkeypatch.setenv("BUILDMQ_RABBIT_PASSWORD", "s3cret")
    hooks = _FakeHooks(results=[PublishResult(destination="rabbit-1", success=True, dry_run=True)])
    _install_hooks(monkeypatch, hooks)

    assert commands.cmd_publish(_publish_args(dry_run=True)) == 0
    assert "s3cret" not in capsys.readouterr().out
