from __future__ import annotations

import pytest

from picturebook.agents.utils import extract_json, split_data_url, strip_code_fence


class TestExtractJson:
    def test_valid_json(self):
        text = '{"ageRange": "3-5", "theme": "courage"}'
        assert extract_json(text) == {"ageRange": "3-5", "theme": "courage"}

    def test_json_with_markdown_fence(self):
        text = '```json\n{"spreadCount": 12}\n```'
        assert extract_json(text) == {"spreadCount": 12}

    def test_json_with_surrounding_text(self):
        text = 'Here is the concept:\n{"theme": "courage"}\nLet me know!'
        assert extract_json(text) == {"theme": "courage"}

    def test_nested_json(self):
        text = '{"panels": [{"spreadNumber": 1, "composition": "wide"}]}'
        assert extract_json(text) == {"panels": [{"spreadNumber": 1, "composition": "wide"}]}

    def test_json_with_unicode(self):
        text = '{"finalText": "米拉找到了一盏灯"}'
        assert extract_json(text) == {"finalText": "米拉找到了一盏灯"}

    def test_no_json_raises(self):
        with pytest.raises(ValueError, match="未找到 JSON"):
            extract_json("This is just plain text without any JSON")

    def test_array_raises(self):
        with pytest.raises(ValueError, match="未找到 JSON 对象"):
            extract_json("[1, 2, 3]")

    def test_truncated_json_is_not_repaired(self):
        with pytest.raises(ValueError):
            extract_json('{"spreads": [{"spreadNumber": 1')


class TestStripCodeFence:
    def test_plain_text_untouched(self):
        assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'

    def test_fence_without_language(self):
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'


class TestSplitDataUrl:
    def test_data_url(self):
        assert split_data_url("data:image/png;base64,AAAA") == ("image/png", "AAAA")

    def test_bare_base64_uses_default(self):
        assert split_data_url("AAAA") == ("image/jpeg", "AAAA")

    def test_missing_media_type(self):
        assert split_data_url("data:;base64,AAAA") == ("image/jpeg", "AAAA")
