"""Tests for prompt template loading and placeholder substitution."""

import pytest

from agents.base.prompt_loader import PromptLoader
from tests.conftest import PROMPTS_DIR


@pytest.fixture
def prompts(tmp_path):
    (tmp_path / "coder").mkdir()
    (tmp_path / "coder" / "handle_interaction.md").write_text(
        "Request: {{ requirement }}\nLanguage: {{language}}\n{{ missing }}", encoding="utf-8"
    )
    (tmp_path / "coder" / "plain.txt").write_text("text template", encoding="utf-8")
    return tmp_path


class TestLoadTemplate:
    def test_loads_markdown_first(self, prompts):
        loader = PromptLoader(str(prompts))
        assert loader.load_template("coder", "handle_interaction").startswith("Request:")

    def test_falls_back_to_txt(self, prompts):
        assert PromptLoader(str(prompts)).load_template("coder", "plain") == "text template"

    def test_missing_template_is_none(self, prompts):
        assert PromptLoader(str(prompts)).load_template("coder", "nothing") is None
        assert PromptLoader(str(prompts)).load_template("security", "analyze_code") is None

    def test_templates_are_cached(self, prompts):
        loader = PromptLoader(str(prompts))
        loader.load_template("coder", "plain")
        (prompts / "coder" / "plain.txt").write_text("edited", encoding="utf-8")

        assert loader.load_template("coder", "plain") == "text template"

        loader.clear_cache()
        assert loader.load_template("coder", "plain") == "edited"

    def test_oversized_template_is_truncated(self, prompts):
        (prompts / "coder" / "big.md").write_text("x" * 100, encoding="utf-8")
        loader = PromptLoader(str(prompts), max_size=10)
        assert loader.load_template("coder", "big") == "x" * 10

    def test_latin1_fallback(self, prompts):
        (prompts / "coder" / "legacy.txt").write_bytes("código".encode("latin-1"))
        assert PromptLoader(str(prompts)).load_template("coder", "legacy") == "código"

    def test_prompts_path_from_environment(self, prompts, monkeypatch):
        monkeypatch.setenv("PROMPTS_PATH", str(prompts))
        assert PromptLoader().load_template("coder", "plain") == "text template"


class TestApplyVariables:
    def test_substitutes_with_or_without_spaces(self):
        result = PromptLoader.apply_variables("{{ a }} and {{b}}", {"a": "one", "b": 2})
        assert result == "one and 2"

    def test_none_renders_empty(self):
        assert PromptLoader.apply_variables("[{{ a }}]", {"a": None}) == "[]"

    def test_unknown_placeholders_are_left(self):
        assert PromptLoader.apply_variables("{{ a }} {{ b }}", {"a": "x"}) == "x {{ b }}"

    def test_keys_are_case_sensitive(self):
        assert PromptLoader.apply_variables("{{ Name }}", {"name": "x"}) == "{{ Name }}"

    def test_values_are_inserted_literally(self):
        # Backslashes and group references must not be interpreted
        value = r"C:\temp \1 $&"
        assert PromptLoader.apply_variables("{{ path }}", {"path": value}) == value

    def test_values_are_not_rescanned(self):
        code = "<template><p>{{ language }}</p></template>"
        result = PromptLoader.apply_variables(
            "{{ previous_code }} in {{ language }}",
            {"previous_code": code, "language": "vue"},
        )
        assert result == "<template><p>{{ language }}</p></template> in vue"

    def test_render(self, prompts):
        rendered = PromptLoader(str(prompts)).render(
            "coder", "handle_interaction", {"requirement": "todo API", "language": "python"}
        )
        assert "Request: todo API" in rendered
        assert "Language: python" in rendered
        assert "{{ missing }}" in rendered

    def test_render_missing_template(self, prompts):
        assert PromptLoader(str(prompts)).render("coder", "nothing", {}) is None


class TestShippedTemplates:
    @pytest.mark.parametrize("agent_type,name", [
        ("product", "analyze_requirement"),
        ("product", "validate_code"),
        ("coder", "handle_interaction"),
        ("test", "handle_interaction"),
        ("test", "generate_tests"),
        ("test", "simulate_tests"),
        ("test", "validate_fix"),
        ("security", "analyze_code"),
        ("security", "verify_fixes"),
    ])
    def test_every_agent_template_exists(self, agent_type, name):
        template = PromptLoader(str(PROMPTS_DIR)).load_template(agent_type, name)
        assert template
        assert "JSON" in template

    def test_prompt_optimization_template(self):
        template = PromptLoader(str(PROMPTS_DIR)).load_template("utility", "optimize_prompt")
        for placeholder in ("target_agent", "original_prompt", "history", "workflow_context"):
            assert "{{ " + placeholder + " }}" in template
