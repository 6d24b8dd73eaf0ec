"""Tests for prompt templates."""

from __future__ import annotations

import pytest

from promql_mcp.exceptions import MissingArgumentError
from promql_mcp.prompts import (
    GENERATE_DASHBOARD_PROMPT,
    GENERATE_PROMQL_PROMPT,
    build_dashboard_prompt,
    build_query_prompt,
)

API_URL = "http://localhost:9090"


def prompt_text(result) -> str:
    assert len(result.messages) == 1
    message = result.messages[0]
    assert message.role == "user"
    assert message.content.type == "text"
    return message.content.text


class TestQueryPrompt:
    """Test the PromQL generation prompt."""

    def test_substitutes_url_and_question(self):
        result = build_query_prompt(API_URL, {"question": "why is latency high?"})
        text = prompt_text(result)

        assert "http://localhost:9090/api/v1/query?query=your_query_here" in text
        assert "Assume that the promethes is available at http://localhost:9090." in text
        assert text.endswith("here is the user's actual question: why is latency high?")

    def test_is_deterministic(self):
        first = build_query_prompt(API_URL, {"question": "how many pods restarted?"})
        second = build_query_prompt(API_URL, {"question": "how many pods restarted?"})

        assert prompt_text(first) == prompt_text(second)

    def test_missing_question(self):
        with pytest.raises(MissingArgumentError) as exc_info:
            build_query_prompt(API_URL, {})

        assert exc_info.value.argument == "question"
        assert str(exc_info.value) == "question is required"

    def test_none_arguments(self):
        with pytest.raises(MissingArgumentError):
            build_query_prompt(API_URL, None)

    def test_empty_question_is_present(self):
        text = prompt_text(build_query_prompt(API_URL, {"question": ""}))
        assert text.endswith("actual question: ")

    def test_values_are_not_escaped(self):
        question = 'rate(http_requests_total{code=~"5.."}[5m]) 100% {{x}}'
        text = prompt_text(build_query_prompt(API_URL, {"question": question}))
        assert question in text

    def test_description(self):
        result = build_query_prompt(API_URL, {"question": "q"})
        assert result.description == GENERATE_PROMQL_PROMPT.description


class TestDashboardPrompt:
    """Test the Perses dashboard generation prompt."""

    ARGS = {
        "question": "show me node memory pressure",
        "datasource": "prometheus-k8s",
        "namespace_or_project": "monitoring",
    }

    def test_substitutes_arguments(self):
        text = prompt_text(build_dashboard_prompt(self.ARGS))

        assert (
            "fill out the datasource as prometheus-k8s and the namespace as monitoring"
            in text
        )
        assert text.endswith(
            "here's the user's actual question: show me node memory pressure\n"
        )

    def test_embeds_worked_example(self):
        text = prompt_text(build_dashboard_prompt(self.ARGS))

        assert "kind: PersesDashboard" in text
        assert "seriesNameFormat: '{{namespace}}'" in text
        assert "[$__rate_interval]" in text

    @pytest.mark.parametrize(
        "missing, expected",
        [
            (("question",), "question"),
            (("datasource",), "datasource"),
            (("namespace_or_project",), "namespace_or_project"),
            (("datasource", "namespace_or_project"), "datasource"),
            (("question", "datasource", "namespace_or_project"), "question"),
        ],
    )
    def test_first_missing_argument_is_reported(self, missing, expected):
        arguments = {k: v for k, v in self.ARGS.items() if k not in missing}

        with pytest.raises(MissingArgumentError) as exc_info:
            build_dashboard_prompt(arguments)

        assert exc_info.value.argument == expected
        assert str(exc_info.value) == f"{expected} is required"

    def test_description(self):
        result = build_dashboard_prompt(self.ARGS)
        assert "PersesDashboard" in result.description


class TestPromptDefinitions:
    """Test the advertised prompt definitions."""

    def test_query_prompt_arguments(self):
        assert GENERATE_PROMQL_PROMPT.name == "prometheus_generate_promql"
        assert [(a.name, a.required) for a in GENERATE_PROMQL_PROMPT.arguments] == [
            ("question", True)
        ]

    def test_dashboard_prompt_arguments(self):
        assert GENERATE_DASHBOARD_PROMPT.name == "perses_generate_dashboard"
        assert [a.name for a in GENERATE_DASHBOARD_PROMPT.arguments] == [
            "question",
            "datasource",
            "namespace_or_project",
        ]
        assert all(a.required for a in GENERATE_DASHBOARD_PROMPT.arguments)
