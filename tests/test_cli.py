import json
import textwrap

import pytest

from pipelinesync.cli import main

PIPELINES_YML = """
pipelines:
  - id: main
    description: Beats ingestion
    pipeline: |
      input { beats { port => 5044 } }
    settings:
      workers: 2
  - id: syslog
    pipeline: "input { syslog {} }"
"""


@pytest.fixture()
def workdir(tmp_path, monkeypatch, kibana):
    monkeypatch.chdir(tmp_path)
    for var in ("KIBANA_URL", "CLOUD_AUTH"):
        monkeypatch.setenv(var, "unset")
        monkeypatch.delenv(var)
    (tmp_path / "pipelinesync.yml").write_text(textwrap.dedent(f"""
        kibana:
          url: "{kibana.base_url}"
          cloud_auth: "elastic:changeme"
          timeout_sec: 5
    """), encoding="utf-8")
    (tmp_path / "pipelines.yml").write_text(PIPELINES_YML, encoding="utf-8")
    return tmp_path


def _run(workdir, *args):
    return main([
        *args,
        "--config", str(workdir / "pipelinesync.yml"),
        "--logs-dir", str(workdir / "logs"),
    ])


def test_apply_then_apply_again(workdir, kibana, capsys):
    rc = _run(workdir, "apply", "--file", "pipelines.yml")
    out = capsys.readouterr().out
    assert rc == 0
    assert "CREATE=2 | UPDATE=0 | NOOP=0 | ERROR=0" in out
    assert kibana.count("PUT") == 2
    assert kibana.pipelines["main"]["settings"]["pipeline.workers"] == 2
    assert kibana.pipelines["main"]["settings"]["pipeline.batch.delay"] == 50

    rc = _run(workdir, "apply", "--file", "pipelines.yml")
    out = capsys.readouterr().out
    assert rc == 0
    assert "CREATE=0 | UPDATE=0 | NOOP=2 | ERROR=0" in out
    assert kibana.count("PUT") == 2

    assert list((workdir / "logs").glob("20*/apply_*.log"))


def test_plan_and_dry_run_never_write(workdir, kibana, capsys):
    kibana.seed("main", "input { stdin {} }")

    assert _run(workdir, "plan", "--file", "pipelines.yml") == 0
    out = capsys.readouterr().out
    assert "CREATE=1 | UPDATE=1 | NOOP=0 | ERROR=0" in out

    assert _run(workdir, "apply", "--file", "pipelines.yml", "--dry-run", "--format", "json") == 0
    rows = json.loads(capsys.readouterr().out)
    assert {r["id"]: r["result"] for r in rows} == {"main": "update", "syslog": "create"}
    assert all(r["status"] == "Planned" for r in rows)
    assert kibana.count("PUT") == 0


def test_underscored_key_style(workdir, kibana):
    assert _run(workdir, "apply", "--file", "pipelines.yml", "--no-defaults", "--key-style", "underscored") == 0
    assert kibana.pipelines["main"]["settings"] == {"pipeline_workers": 2}


def test_remote_failure_on_one_row(workdir, kibana, capsys):
    kibana.overrides[("PUT", "/api/logstash/pipeline/main")] = (500, b'{"message": "boom"}')
    rc = _run(workdir, "apply", "--file", "pipelines.yml")
    out = capsys.readouterr().out
    assert rc == 4
    assert "CREATE=1 | UPDATE=0 | NOOP=0 | ERROR=1" in out
    assert "boom" in out
    assert "syslog" in kibana.pipelines


def test_invalid_input_file(workdir, kibana, capsys):
    (workdir / "bad.yml").write_text("pipelines:\n  - {id: main, pipeline: x, settings: {workers: 0}}\n",
                                     encoding="utf-8")
    assert _run(workdir, "apply", "--file", "bad.yml") == 3
    assert _run(workdir, "apply", "--file", "missing.yml") == 3
    assert kibana.calls == []


def test_get_list_delete(workdir, kibana, capsys):
    kibana.seed("main", "input { beats {} }", description="beats", settings={"pipeline.workers": 3})
    kibana.seed("other", "input { stdin {} }", username="ops")

    assert _run(workdir, "get", "main", "--format", "json") == 0
    state = json.loads(capsys.readouterr().out)
    assert state == {
        "id": "main",
        "description": "beats",
        "pipeline": "input { beats {} }",
        "settings": {"workers": 3},
        "username": "elastic",
        "last_modified": "2024-01-01T00:00:00.000Z",
    }

    assert _run(workdir, "get", "ghost") == 3

    assert _run(workdir, "list") == 0
    out = capsys.readouterr().out
    assert "| main" in out and "| other" in out and "ops" in out

    assert _run(workdir, "delete", "other") == 0
    assert "deleted" in capsys.readouterr().out
    assert _run(workdir, "delete", "other") == 0
    assert "absent" in capsys.readouterr().out


def test_missing_configuration(workdir, tmp_path):
    empty = tmp_path / "empty.yml"
    empty.write_text("{}", encoding="utf-8")
    assert main(["list", "--config", str(empty), "--logs-dir", str(tmp_path / "logs")]) == 2
    assert main(["list", "--config", str(tmp_path / "nope.yml")]) == 2


def test_unreachable_kibana(workdir, tmp_path):
    rc = main([
        "list",
        "--config", str(workdir / "pipelinesync.yml"),
        "--kibana-url", "http://127.0.0.1:9",
        "--logs-dir", str(tmp_path / "logs"),
    ])
    assert rc == 4


def test_file_defaults_to_inputs_path(workdir, kibana, capsys):
    # ./pipelines.yml is the inputs.path default
    assert _run(workdir, "plan") == 0
    assert "CREATE=2 | UPDATE=0 | NOOP=0 | ERROR=0" in capsys.readouterr().out


def test_apply_clears_a_setting_missing_from_the_file(workdir, kibana, capsys):
    assert _run(workdir, "apply", "--file", "pipelines.yml") == 0
    kibana.pipelines["main"]["settings"]["pipeline.batch.size"] = 500
    capsys.readouterr()

    assert _run(workdir, "apply", "--file", "pipelines.yml") == 0
    assert "CREATE=0 | UPDATE=1 | NOOP=1 | ERROR=0" in capsys.readouterr().out
    assert "pipeline.batch.size" not in kibana.pipelines["main"]["settings"]
