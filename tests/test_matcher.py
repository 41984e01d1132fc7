"""
Tests for tool intent matching.
"""

from __future__ import annotations

import pytest

from intent_router.matcher import (
    ARTIFACTS,
    CALCULATOR,
    EXECUTE_CODE,
    FILE_SEARCH,
    IMAGE_GEN,
    WEB_SEARCH,
    YOUTUBE_VIDEO,
    ResourceMeta,
    ToolIntentMatcher,
    is_follow_up,
)

ALL_TOOLS = frozenset({
    WEB_SEARCH, EXECUTE_CODE, FILE_SEARCH, IMAGE_GEN, YOUTUBE_VIDEO, ARTIFACTS, CALCULATOR,
})


@pytest.fixture
def matcher() -> ToolIntentMatcher:
    return ToolIntentMatcher()


class TestTextSignals:

    def test_weather_needs_web_search(self, matcher):
        result = matcher.match("what's today's weather", available_tools={WEB_SEARCH})
        assert result.tools == frozenset({WEB_SEARCH})
        assert result.confidence == pytest.approx(0.9)

    def test_no_tools_for_plain_debugging(self, matcher):
        result = matcher.match("fix this segfault in my C program", available_tools=ALL_TOOLS)
        assert result.tools == frozenset()
        assert result.confidence == 1.0

    def test_youtube_link(self, matcher):
        result = matcher.match(
            "summarize https://www.youtube.com/watch?v=abc123", available_tools=ALL_TOOLS
        )
        assert YOUTUBE_VIDEO in result.tools
        assert dict(result.weights)[YOUTUBE_VIDEO] == 1.0

    def test_run_code(self, matcher):
        result = matcher.match("run this python script for me", available_tools=ALL_TOOLS)
        assert EXECUTE_CODE in result.tools

    def test_image_generation(self, matcher):
        result = matcher.match("draw a picture of a lighthouse", available_tools=ALL_TOOLS)
        assert IMAGE_GEN in result.tools

    def test_weak_evidence_lowers_confidence(self, matcher):
        result = matcher.match("any news on the election", available_tools=ALL_TOOLS)
        assert result.tools == frozenset({WEB_SEARCH})
        assert result.confidence == pytest.approx(0.6)

    def test_empty_text(self, matcher):
        result = matcher.match("", available_tools=ALL_TOOLS)
        assert result.tools == frozenset()
        assert result.confidence == 1.0


class TestAvailability:

    def test_unavailable_tool_never_surfaced(self, matcher):
        result = matcher.match("what's today's weather", available_tools={CALCULATOR})
        assert result.tools == frozenset()
        assert result.confidence == 1.0

    def test_none_means_nothing_available(self, matcher):
        result = matcher.match("what's today's weather", available_tools=None)
        assert result.tools == frozenset()

    def test_vocabulary_covers_catalog(self, matcher):
        assert set(matcher.vocabulary) == ALL_TOOLS


class TestResources:

    def test_csv_routes_to_structured_data_tool(self, matcher):
        result = matcher.match(
            "summarize this", [ResourceMeta(name="sales.csv")], available_tools=ALL_TOOLS
        )
        assert result.tools == frozenset({EXECUTE_CODE})
        assert result.authoritative == frozenset({EXECUTE_CODE})
        assert result.confidence == 1.0

    def test_spreadsheet_by_mime_type(self, matcher):
        meta = ResourceMeta(
            name="report",
            mime_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        assert meta.is_tabular()
        assert ToolIntentMatcher.resource_tools(meta, "") == [EXECUTE_CODE]

    def test_pdf_routes_to_file_search(self, matcher):
        result = matcher.match(
            "what does it say?", [ResourceMeta(name="Contract.PDF")], available_tools=ALL_TOOLS
        )
        assert FILE_SEARCH in result.authoritative

    def test_mixed_uploads(self, matcher):
        result = matcher.match(
            "compare these",
            [ResourceMeta(name="data.xlsx"), ResourceMeta(name="notes.docx")],
            available_tools=ALL_TOOLS,
        )
        assert result.tools == frozenset({EXECUTE_CODE, FILE_SEARCH})

    def test_image_needs_edit_intent(self):
        photo = ResourceMeta(name="cat.png", mime_type="image/png")
        assert ToolIntentMatcher.resource_tools(photo, "what breed is this?") == []
        assert ToolIntentMatcher.resource_tools(photo, "edit the background") == [IMAGE_GEN]

    def test_resource_rule_respects_availability(self, matcher):
        result = matcher.match(
            "summarize this", [ResourceMeta(name="sales.csv")], available_tools={FILE_SEARCH}
        )
        assert result.tools == frozenset()
        assert result.authoritative == frozenset()

    def test_unknown_extension_ignored(self):
        meta = ResourceMeta(name="archive.zip")
        assert ToolIntentMatcher.resource_tools(meta, "unpack it") == []
        assert ResourceMeta().extension == ""


class TestFollowUps:

    HISTORY = ["what's the weather in Paris today", "Sunny, 22C (via web_search)"]

    def test_follow_up_keeps_previous_tools(self, matcher):
        result = matcher.match("and in London?", available_tools=ALL_TOOLS, history=self.HISTORY)
        assert result.tools == frozenset({WEB_SEARCH})
        assert result.inherited == frozenset({WEB_SEARCH})
        assert result.confidence == pytest.approx(0.7)

    def test_tool_named_by_id_in_history(self, matcher):
        result = matcher.match(
            "what about the second one?", available_tools=ALL_TOOLS,
            history=["Here is the chart (ran execute_code)"],
        )
        assert result.tools == frozenset({EXECUTE_CODE})

    @pytest.mark.parametrize("text", ["thanks", "ok!", "Hello"])
    def test_greetings_do_not_inherit(self, matcher, text):
        result = matcher.match(text, available_tools=ALL_TOOLS, history=self.HISTORY)
        assert result.tools == frozenset()
        assert result.inherited == frozenset()

    def test_new_topic_does_not_inherit(self, matcher):
        result = matcher.match("explain recursion", available_tools=ALL_TOOLS, history=self.HISTORY)
        assert result.tools == frozenset()

    def test_inheritance_respects_availability(self, matcher):
        result = matcher.match("and in London?", available_tools={FILE_SEARCH}, history=self.HISTORY)
        assert result.tools == frozenset()
        result = matcher.match("and in London?", history=self.HISTORY)
        assert result.tools == frozenset()

    def test_own_tools_win_over_history(self, matcher):
        result = matcher.match(
            "and draw an image of it", available_tools=ALL_TOOLS, history=self.HISTORY,
        )
        assert result.tools == frozenset({IMAGE_GEN})
        assert result.inherited == frozenset()

    def test_no_history_no_inheritance(self, matcher):
        result = matcher.match("and in London?", available_tools=ALL_TOOLS)
        assert result.tools == frozenset()


@pytest.mark.parametrize("text,expected", [
    ("and in London?", True),
    ("what about tomorrow", True),
    ("in celsius please", True),
    ("thanks!", False),
    ("", False),
    ("explain how TCP works", False),
    ("can you write a poem", False),
])
def test_is_follow_up(text, expected):
    assert is_follow_up(text) is expected
