import pytest

from actions_workflow_tools.errors import InvalidPatternError
from actions_workflow_tools.paths import (
    compile_paths,
    glob_to_regex,
    match_path,
    match_paths,
    normalize_paths,
    paths_node_id,
    paths_output_name,
)


def test_single_star_stays_in_segment():
    assert glob_to_regex("*.js") == r"^[^/]*\.js$"
    assert match_path("*.js", "index.js")
    assert not match_path("*.js", "src/index.js")


def test_double_star_crosses_segments():
    assert glob_to_regex("src/**/*.py") == r"^src/.*\.py$"
    assert match_path("src/**/*.py", "src/pkg/mod/a.py")
    assert match_path("docs/**", "docs/a/b/c.md")
    assert not match_path("docs/**", "README.md")


def test_literal_dot_is_escaped():
    assert match_path(".github/workflow-templates/**", ".github/workflow-templates/lint.yml")
    assert not match_path(".github/workflow-templates/**", "xgithub/workflow-templates/lint.yml")
    assert not match_path("*.js", "fooxjs")


def test_other_regex_characters_are_literal():
    assert match_path("a+b(1).txt", "a+b(1).txt")
    assert not match_path("a+b.txt", "aab.txt")


def test_unsupported_star_run_names_pattern():
    with pytest.raises(InvalidPatternError, match=r"src/\*\*\*"):
        glob_to_regex("src/***")


def test_match_paths_any_file_any_pattern():
    assert match_paths(["*.md", "src/**"], ["setup.cfg", "src/a.py"])
    assert not match_paths(["*.md"], ["src/a.py"])
    assert not match_paths(["*.md"], [])


def test_normalize_paths():
    assert normalize_paths("*.js") == ["*.js"]
    assert normalize_paths(["a", "b"]) == ["a", "b"]
    assert normalize_paths(None) == []


def test_node_id_ignores_pattern_order():
    assert paths_node_id(["b/**", "a/**"]) == paths_node_id(["a/**", "b/**"]) == "paths-a/**#b/**"


def test_output_name():
    assert paths_output_name(["*.js"]) == "paths__js"
    assert paths_output_name(["*.java"]) == "paths__java"
    assert paths_output_name(["src/**", "*.md"]) == "paths_src____md"


def test_compile_paths_step():
    step = compile_paths("paths__js", ["*.js", "lib/**"])
    assert step["id"] == "paths__js"
    assert step["name"] == "Check paths: *.js, lib/**"
    assert "grep -E '^[^/]*\\.js$'" in step["run"]
    assert "grep -E '^lib/.*$'" in step["run"]
    assert "refs/remotes/origin/$GITHUB_BASE_REF" in step["run"]
    assert step["run"].count('echo "changed=true" >> "$GITHUB_OUTPUT"') == 2
    assert step["run"].endswith('echo "changed=false" >> "$GITHUB_OUTPUT"\nexit 0')


def test_compile_paths_quotes_single_quotes():
    step = compile_paths("paths_it_s", ["it's/*"])
    assert "grep -E '^it'\\''s/[^/]*$'" in step["run"]


def test_output_name_is_ascii_only():
    assert paths_output_name(["docs/café/**"]) == "paths_docs_caf_"
    assert paths_output_name(["ü.md"]) == "paths__md"
