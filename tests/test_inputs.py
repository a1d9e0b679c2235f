import textwrap

import pandas as pd
import pytest

from pipelinesync.core.errors import ValidationError
from pipelinesync.pipelines.inputs import load_specs


def _write(path, text):
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_yaml_with_inline_and_file_definitions(tmp_path):
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "syslog.conf").write_text("input { syslog {} }", encoding="utf-8")
    f = _write(tmp_path / "pipelines.yml", """
        pipelines:
          - id: main
            description: Beats ingestion
            pipeline: |
              input { beats { port => 5044 } }
            settings:
              workers: 2
              queue_type: persisted
          - id: syslog
            pipeline_file: conf/syslog.conf
    """)

    specs = load_specs(str(f))

    assert [s.id for s in specs] == ["main", "syslog"]
    main, syslog = specs
    assert main.description == "Beats ingestion"
    assert main.definition.startswith("input { beats")
    assert main.settings == {
        "workers": 2,
        "queue_type": "persisted",
        "batch_delay": 50,
        "queue_checkpoint_writes": 1024,
        "queue_max_bytes": "1gb",
    }
    assert syslog.definition == "input { syslog {} }"
    assert syslog.description is None


def test_defaults_can_be_disabled(tmp_path):
    f = _write(tmp_path / "p.yml", """
        pipelines:
          - id: main
            pipeline: x
            settings: {workers: 3}
    """)
    (spec,) = load_specs(str(f), apply_defaults=False)
    assert spec.settings == {"workers": 3}


def test_batch_size_has_no_default(tmp_path):
    f = _write(tmp_path / "p.yml", """
        pipelines:
          - id: main
            pipeline: x
    """)
    (spec,) = load_specs(str(f))
    assert "batch_size" not in spec.settings


@pytest.mark.parametrize(
    "body, fragment",
    [
        ("pipelines: {}", "top-level 'pipelines' list"),
        ("pipelines:\n  - id: main\n", "one of 'pipeline' or 'pipeline_file'"),
        ("pipelines:\n  - pipeline: x\n", "'id' is required"),
        ("pipelines:\n  - {id: main, pipeline: x, settings: {workers: 0}}\n", "at least 1"),
        ("pipelines:\n  - {id: main, pipeline: x, settings: {queue_type: disk}}\n", "queue_type"),
        ("pipelines:\n  - {id: main, pipeline: x, settings: {colour: blue}}\n", "unknown setting 'colour'"),
        ("pipelines:\n  - {id: main, pipeline_file: nope.conf}\n", "pipeline_file not found"),
        ("pipelines:\n  - {id: a, pipeline: x}\n  - {id: a, pipeline: y}\n", "Duplicate pipeline id 'a'"),
    ],
)
def test_yaml_errors(tmp_path, body, fragment):
    f = tmp_path / "p.yml"
    f.write_text(body, encoding="utf-8")
    with pytest.raises(ValidationError) as ei:
        load_specs(str(f))
    assert fragment in str(ei.value)


def test_error_messages_locate_the_entry(tmp_path):
    f = _write(tmp_path / "p.yml", """
        pipelines:
          - {id: ok, pipeline: x}
          - {id: bad, pipeline: x, settings: {batch_delay: -1}}
    """)
    with pytest.raises(ValidationError) as ei:
        load_specs(str(f))
    assert "pipelines[1] (bad)" in str(ei.value)


def test_csv_rows(tmp_path):
    f = tmp_path / "p.csv"
    f.write_text(
        "id,description,pipeline,workers,queue_type\n"
        "main,Beats,input { beats {} },2,persisted\n"
        ",,,,\n"
        "second,,input { stdin {} },,\n",
        encoding="utf-8",
    )
    specs = load_specs(str(f), apply_defaults=False)
    assert [s.id for s in specs] == ["main", "second"]
    assert specs[0].settings == {"workers": 2, "queue_type": "persisted"}
    assert specs[1].settings == {}
    assert specs[1].description is None


def test_csv_requires_a_definition_column(tmp_path):
    f = tmp_path / "p.csv"
    f.write_text("id,description\nmain,x\n", encoding="utf-8")
    with pytest.raises(ValidationError) as ei:
        load_specs(str(f))
    assert "pipeline" in str(ei.value)


def test_xlsx_sheet(tmp_path):
    f = tmp_path / "p.xlsx"
    df = pd.DataFrame(
        [
            {"id": "main", "description": "Beats", "pipeline": "input { beats {} }", "workers": 4, "batch_size": None},
            {"id": "other", "description": None, "pipeline": "input { stdin {} }", "workers": None, "batch_size": 250},
        ]
    )
    with pd.ExcelWriter(f, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Pipelines", index=False)

    specs = load_specs(str(f), apply_defaults=False)
    assert specs[0].settings == {"workers": 4}
    assert isinstance(specs[0].settings["workers"], int)
    assert specs[1].settings == {"batch_size": 250}


def test_xlsx_missing_sheet(tmp_path):
    f = tmp_path / "p.xlsx"
    with pd.ExcelWriter(f, engine="openpyxl") as writer:
        pd.DataFrame([{"id": "main", "pipeline": "x"}]).to_excel(writer, sheet_name="Other", index=False)
    with pytest.raises(ValidationError) as ei:
        load_specs(str(f))
    assert "Missing required sheets: Pipelines" in str(ei.value)
    assert len(load_specs(str(f), sheet="Other")) == 1


def test_unsupported_extension_and_missing_file(tmp_path):
    f = tmp_path / "p.json"
    f.write_text("{}", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_specs(str(f))
    with pytest.raises(FileNotFoundError):
        load_specs(str(tmp_path / "missing.yml"))
