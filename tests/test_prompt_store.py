from __future__ import annotations

import pytest

from agentic_search.services.prompt_store import PromptCatalog, render_pair, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("research.system_prompt", today="Saturday, October 17, 2026")
    assert "Saturday, October 17, 2026" in prompt


def test_render_prompt_joins_line_lists():
    prompt = render_prompt("claim_extraction.user_prompt", response_text="Cells last longer.")
    assert "\n" in prompt
    assert "Cells last longer." in prompt


def test_render_prompt_leaves_dollar_signs_in_values_alone():
    prompt = render_prompt(
        "excerpt_extraction.user_prompt",
        claim_text="It costs $99",
        source_url="https://a.com",
        source_content="Price: $99",
    )
    assert "It costs $99" in prompt
    assert "Price: $99" in prompt


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="response_text"):
        render_prompt("claim_extraction.user_prompt")


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_pair_shares_values_between_system_and_user():
    system, user = render_pair("claim_extraction", response_text="Cells last longer.")
    assert system == render_prompt("claim_extraction.system_prompt")
    assert "Cells last longer." in user


def test_catalog_joins_lines_and_reloads_on_change(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text('{"task": {"system_prompt": ["one", "$x"], "user_prompt": "u"}}', encoding="utf-8")
    catalog = PromptCatalog(path)

    assert catalog.render_pair("task", x="two") == ("one\ntwo", "u")
    assert catalog.render("task.system_prompt", x="$$") == "one\n$$"

    path.write_text('{"task": {"system_prompt": "changed"}}', encoding="utf-8")
    catalog.clear()
    assert catalog.render("task.system_prompt") == "changed"
    with pytest.raises(KeyError, match="task.user_prompt"):
        catalog.render("task.user_prompt")


def test_catalog_shape_is_validated(tmp_path):
    path = tmp_path / "prompts.json"
    catalog = PromptCatalog(path)

    path.write_text('{"a": {"b": 3}}', encoding="utf-8")
    with pytest.raises(TypeError, match="a.b"):
        catalog.render("a.b")

    path.write_text('["not", "an", "object"]', encoding="utf-8")
    catalog.clear()
    with pytest.raises(ValueError):
        catalog.render("a.b")
