from __future__ import annotations

import textwrap

from tomato.validation import validate_suite


def _write(temp_dir, config: str, features: dict[str, str]):
    (temp_dir / "features").mkdir()
    for name, text in features.items():
        (temp_dir / "features" / name).write_text(textwrap.dedent(text), encoding="utf-8")
    p = temp_dir / "tomato.yml"
    p.write_text(textwrap.dedent(config), encoding="utf-8")
    return p


def test_collects_every_problem_without_io(temp_dir, registries, settings):
    drivers, steps = registries
    p = _write(
        temp_dir,
        """
        features_path: features
        resources:
          - name: db
            type: database/sql
            driver: fake
          - name: pg
            type: postgres
            params:
              datasource: postgres://u@nowhere/app
              pool: 3
          - name: mq
            type: queue
            driver: rabbitmq
        """,
        {
            "a.feature": """
                Feature: a
                  Scenario: rows
                    Given set "db" table "users" list of content
                      | id | name |
                      | 1  | bob  |
                    And nobody handles this
                    Then "db" table "users" should look like
            """,
            "b.feature": "Feature: empty\n",
            "c.feature": "Feature: broken\n  Scenario: x\n    | a |\n  oops\n",
        },
    )

    report = validate_suite(p, settings=settings, env={}, drivers=drivers, steps=steps)

    assert report["ok"] is False
    codes = [(e["code"], e["loc"].rsplit("/", 1)[-1]) for e in report["errors"]]
    assert ("resource:invalid", "resources.pg") in codes
    assert ("resource:invalid", "resources.mq") in codes
    assert ("step:undefined", "a.feature:7") in codes
    assert ("step:invalid", "a.feature:8") in codes
    assert ("feature:invalid", "c.feature") in codes
    assert [w["code"] for w in report["warnings"]] == ["feature:empty"]
    pg = next(e for e in report["errors"] if e["loc"] == "resources.pg")
    assert "unknown params ['pool']" in pg["msg"]
    mq = next(e for e in report["errors"] if e["loc"] == "resources.mq")
    assert "missing required params ['datasource']" in mq["msg"]


def test_clean_suite(temp_dir, registries, settings):
    drivers, steps = registries
    p = _write(
        temp_dir,
        """
        features_path: features
        resources:
          - name: kv
            type: cache
            driver: fake
        """,
        {"a.feature": 'Feature: a\n  Scenario: b\n    Then cache "kv" hasn\'t key "k"\n'},
    )

    report = validate_suite(p, settings=settings, env={}, drivers=drivers, steps=steps)

    assert report == {
        "config": str(p),
        "ok": True,
        "errors": [],
        "warnings": [],
        "resources": 1,
        "features": 1,
        "scenarios": 1,
    }


def test_missing_features_path(temp_dir, registries, settings):
    drivers, steps = registries
    p = temp_dir / "tomato.yml"
    p.write_text("features_path: nowhere\nresources: []\n", encoding="utf-8")

    report = validate_suite(p, settings=settings, env={}, drivers=drivers, steps=steps)

    assert report["ok"] is False
    assert report["errors"][0]["code"] == "feature:missing"


def test_broken_plugin_is_reported_not_raised(temp_dir, settings):
    p = _write(temp_dir, "features_path: features\nresources: []\n", {"a.feature": "Feature: a\n"})
    plugin = temp_dir / "broken_plugin.py"
    plugin.write_text("raise RuntimeError('boom')\n", encoding="utf-8")
    strict = settings.model_copy(update={"plugin_paths": [str(plugin)], "plugin_strict": True})

    report = validate_suite(p, settings=strict, env={})

    assert report["ok"] is False
    assert [(e["code"], e["loc"]) for e in report["errors"]] == [("plugin:invalid", "plugins")]
    assert "boom" in report["errors"][0]["msg"]
