from __future__ import annotations

import textwrap

import pytest

from tomato.exception import ConfigError
from tomato.feature import discover, load_features, parse_feature
from tomato.steps.base import DataTable, DocString

FEATURE = textwrap.dedent(
    '''
    Feature: users api

      Background:
        Given set "db" table "users" to empty

      @smoke
      Scenario: create
        When "api" send request to "POST /users" with body
          """json
          {"name": "bob"}
          """
        Then "db" table "users" should look like
          | name |
          | bob  |

      Scenario Outline: fetch <id>
        When "api" send request to "GET /users/<id>"
        Then "api" response code should be <code>

        Examples:
          | id | code |
          | 1  | 200  |
          | 9  | 404  |
    '''
)


def test_parse_expands_outlines_and_inlines_background():
    feature = parse_feature("users.feature", FEATURE)

    assert feature.name == "users api"
    assert [s.name for s in feature.scenarios] == ["create", "fetch 1", "fetch 9"]

    create = feature.scenarios[0]
    assert create.tags == ("@smoke",)
    assert [s.text for s in create.steps] == [
        'set "db" table "users" to empty',
        '"api" send request to "POST /users" with body',
        '"db" table "users" should look like',
    ]
    assert create.steps[0].keyword == "Given"
    assert isinstance(create.steps[1].argument, DocString)
    assert create.steps[1].argument.content == '{"name": "bob"}'
    assert create.steps[2].argument == DataTable(rows=(("name",), ("bob",)))
    assert create.steps[2].line > create.steps[1].line

    fetch9 = feature.scenarios[2]
    assert fetch9.steps[1].text == '"api" send request to "GET /users/9"'
    assert fetch9.steps[2].text == '"api" response code should be 404'


def test_file_without_feature_is_empty():
    feature = parse_feature("empty.feature", "# nothing here\n")

    assert feature.name == ""
    assert feature.scenarios == ()


def test_invalid_gherkin_is_config_error():
    with pytest.raises(ConfigError, match="invalid feature file bad.feature"):
        parse_feature("bad.feature", "Feature: x\n  Scenario: y\n    | a |\n  oops\n")


def test_discover_sorts_directories_and_dedupes(temp_dir):
    (temp_dir / "b").mkdir()
    (temp_dir / "a").mkdir()
    for rel in ("b/two.feature", "a/one.feature", "a/notes.txt", "top.feature"):
        (temp_dir / rel).write_text("Feature: x\n", encoding="utf-8")

    found = discover([str(temp_dir), str(temp_dir / "top.feature")])

    assert [p.replace(str(temp_dir), "") for p in found] == ["/top.feature", "/a/one.feature", "/b/two.feature"]


def test_discover_missing_path(temp_dir):
    with pytest.raises(ConfigError, match="feature path does not exist"):
        discover([str(temp_dir / "nope")])


def test_load_features_reads_files(temp_dir):
    p = temp_dir / "one.feature"
    p.write_text(FEATURE, encoding="utf-8")

    features = load_features([str(p)])

    assert len(features) == 1
    assert features[0].path == str(p)
    assert len(features[0].scenarios) == 3
