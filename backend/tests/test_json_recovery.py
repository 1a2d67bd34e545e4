import pytest

from listing_optimizer.libs.json_recovery import safe_json_list


class TestSafeJsonList:
    def test_plain_json(self):
        assert safe_json_list('["one", "two"]') == ["one", "two"]

    def test_list_passthrough(self):
        assert safe_json_list(["one", "two"]) == ["one", "two"]
        assert safe_json_list(("one",)) == ["one"]

    def test_zero_width_around_valid_json(self):
        assert safe_json_list('\u200b["one", "two"]\ufeff') == ["one", "two"]

    def test_zero_width_inside_structure(self):
        assert safe_json_list('[\u200d"one",\u200c "two"]') == ["one", "two"]

    def test_array_embedded_in_text(self):
        assert safe_json_list('stored: ["one", "two"] (v2)') == ["one", "two"]

    def test_bytes(self):
        assert safe_json_list(b'["one"]') == ["one"]

    @pytest.mark.parametrize("value", [
        '["one", "tw',
        "not json",
        '{"a": 1}',
        "42",
        "",
        "   ",
        None,
    ])
    def test_unrecoverable_returns_empty_list(self, value):
        assert safe_json_list(value) == []

    def test_custom_fallback(self):
        assert safe_json_list("broken[", fallback=["default"]) == ["default"]

    def test_fallback_is_copied(self):
        fallback = ["default"]
        result = safe_json_list(None, fallback=fallback)
        result.append("changed")
        assert fallback == ["default"]
