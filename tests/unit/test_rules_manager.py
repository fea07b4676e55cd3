"""Unit tests for loading and reloading the rules file."""

import pytest

from supportdesk.config.rules import DEFAULT_BUG_TERMS, RulesConfig
from supportdesk.shared.infrastructure.rules import RulesConfigManager


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "support_rules.yaml"
    path.write_text(
        "bug_terms:\n"
        "  - Kaput\n"
        "synonyms:\n"
        "  - phrases: [\"cover letter\"]\n"
        "    query: cover letter generator\n",
        encoding="utf-8",
    )
    return path


class TestRulesConfigManager:

    @pytest.mark.unit
    def test_load(self, rules_file):
        manager = RulesConfigManager()
        config = manager.load(rules_file)

        assert config.bug_terms == ["kaput"]
        assert config.synonyms[0].query == "cover letter generator"
        assert manager.config is config

    @pytest.mark.unit
    def test_missing_file_uses_defaults(self, tmp_path):
        config = RulesConfigManager().load(tmp_path / "absent.yaml")
        assert config.bug_terms == DEFAULT_BUG_TERMS

    @pytest.mark.unit
    def test_empty_section_keeps_default(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("bug_terms: []\n", encoding="utf-8")
        assert RulesConfigManager().load(path).bug_terms == DEFAULT_BUG_TERMS

    @pytest.mark.unit
    def test_reload_picks_up_changes(self, rules_file):
        manager = RulesConfigManager()
        manager.load(rules_file)

        rules_file.write_text("bug_terms: [busted]\n", encoding="utf-8")

        assert manager.reload() is True
        assert manager.config.bug_terms == ["busted"]

    @pytest.mark.unit
    def test_broken_file_keeps_previous(self, rules_file):
        manager = RulesConfigManager()
        manager.load(rules_file)

        rules_file.write_text("bug_terms: [unclosed\n", encoding="utf-8")

        assert manager.reload() is False
        assert manager.config.bug_terms == ["kaput"]

    @pytest.mark.unit
    def test_reload_before_load(self):
        assert RulesConfigManager().reload() is False

    @pytest.mark.unit
    def test_watch_requires_load(self):
        with pytest.raises(RuntimeError):
            RulesConfigManager().start_watching()

    @pytest.mark.unit
    def test_default_config(self):
        assert RulesConfigManager().config == RulesConfig()

    @pytest.mark.unit
    def test_section_without_items_keeps_default(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("bug_terms:\nsynonyms:\nfeature_terms:\n  - Roadmap\n", encoding="utf-8")

        config = RulesConfigManager().load(path)

        assert config.bug_terms == DEFAULT_BUG_TERMS
        assert config.synonyms == RulesConfig().synonyms
        assert config.feature_terms == ["roadmap"]

    @pytest.mark.unit
    @pytest.mark.parametrize("content", ["bug_terms: [unclosed\n", "- just\n- a list\n", "bug_terms: 42\n"])
    def test_unusable_file_on_first_load_uses_defaults(self, tmp_path, content):
        path = tmp_path / "rules.yaml"
        path.write_text(content, encoding="utf-8")

        manager = RulesConfigManager()
        config = manager.load(path)

        assert config == RulesConfig()
        assert manager.config == RulesConfig()
