# tests/core/test_loader.py
from __future__ import annotations

import pytest

from cloudlink.core.loader import expand_env, merge_section, read_yaml_documents


class TestExpandEnv:
    def test_simple_var(self, monkeypatch):
        monkeypatch.setenv("CLOUD_HOST", "mqtt.example.org")
        assert expand_env("${CLOUD_HOST}") == "mqtt.example.org"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)
        assert expand_env("${MISSING_VAR:-1883}") == "1883"

    def test_env_wins_over_default(self, monkeypatch):
        monkeypatch.setenv("CLOUD_PORT", "8883")
        assert expand_env("${CLOUD_PORT:-1883}") == "8883"

    def test_empty_default(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)
        assert expand_env("${MISSING_VAR:-}") == ""

    def test_missing_without_default_raises(self, monkeypatch):
        monkeypatch.delenv("MISSING_VAR", raising=False)
        with pytest.raises(ValueError, match="not set"):
            expand_env("${MISSING_VAR}")

    def test_embedded_in_string(self, monkeypatch):
        monkeypatch.setenv("AGENT", "a1")
        assert expand_env("agent-${AGENT}-link") == "agent-a1-link"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("CLOUD_HOST", "h")
        result = expand_env({"link": {"host": "${CLOUD_HOST}", "tags": ["${CLOUD_HOST}", 3]}})
        assert result == {"link": {"host": "h", "tags": ["h", 3]}}

    def test_non_string_passthrough(self):
        assert expand_env(60) == 60
        assert expand_env(None) is None


class TestReadYamlDocuments:
    def test_no_match_returns_empty(self, tmp_path):
        assert read_yaml_documents([str(tmp_path / "*.yaml")]) == []

    def test_sorted_order(self, tmp_path):
        (tmp_path / "b.yaml").write_text("link:\n  port: 2\n")
        (tmp_path / "a.yaml").write_text("link:\n  port: 1\n")

        docs = read_yaml_documents([str(tmp_path / "*.yaml")])

        assert [d["link"]["port"] for d in docs] == [1, 2]

    def test_same_file_from_two_patterns_read_once(self, tmp_path):
        (tmp_path / "a.yaml").write_text("link: {}\n")

        docs = read_yaml_documents([str(tmp_path / "a.yaml"), str(tmp_path / "*.yaml")])

        assert len(docs) == 1

    def test_empty_file_is_empty_mapping(self, tmp_path):
        (tmp_path / "a.yaml").write_text("")

        assert read_yaml_documents([str(tmp_path / "a.yaml")]) == [{}]

    def test_non_mapping_rejected(self, tmp_path):
        (tmp_path / "a.yaml").write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="mapping"):
            read_yaml_documents([str(tmp_path / "a.yaml")])


class TestMergeSection:
    def test_later_documents_win(self):
        docs = [{"link": {"host": "a", "port": 1}}, {"link": {"port": 2}}]

        assert merge_section(docs, "link") == {"host": "a", "port": 2}

    def test_missing_section(self):
        assert merge_section([{"other": {}}], "link") == {}

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            merge_section([{"link": ["x"]}], "link")
