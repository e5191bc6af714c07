"""
文本与时间戳工具单元测试

测试 researchflow.utils.text 与 researchflow.utils.timestamps。
"""
import time

import pytest

from researchflow.utils.text import normalize_content, sanitize_plain_text, strip_tags
from researchflow.utils.timestamps import epoch_to_iso, normalize_timestamp


class TestNormalizeContent:
    """测试内容规范化"""

    def test_tags_are_ignored(self):
        """测试 HTML 标签不影响比较"""
        assert normalize_content("<b>Idea A</b>") == normalize_content("Idea A")

    def test_whitespace_is_collapsed(self):
        """测试连续空白被合并、首尾空白被去除"""
        assert normalize_content("  Idea \n\t A  ") == "Idea A"

    def test_entities_are_unescaped(self):
        """测试 HTML 实体被反转义"""
        assert normalize_content("Fish &amp; chips") == "Fish & chips"

    def test_none_is_empty(self):
        """测试 None 规范化为空字符串"""
        assert normalize_content(None) == ""

    def test_different_text_stays_different(self):
        """测试不同文本规范化后仍然不同"""
        assert normalize_content("<p>Idea A</p>") != normalize_content("Idea B")


class TestSanitizePlainText:
    """测试纯文本字段清洗"""

    def test_strips_tags_and_whitespace(self):
        assert sanitize_plain_text("  <i>My title</i> ") == "My title"

    def test_non_string_returns_empty(self):
        """测试非字符串输入返回空字符串"""
        assert sanitize_plain_text(None) == ""
        assert sanitize_plain_text(42) == ""
        assert sanitize_plain_text(["a"]) == ""

    def test_truncates_to_max_length(self):
        assert sanitize_plain_text("x" * 20, max_length=5) == "xxxxx"

    def test_strip_tags_empty(self):
        assert strip_tags("") == ""


class TestNormalizeTimestamp:
    """测试时间戳规范化"""

    def test_seconds_pass_through(self):
        assert normalize_timestamp(1700000000) == 1700000000

    def test_milliseconds_are_converted(self):
        """测试大于 10^10 的值按毫秒处理"""
        assert normalize_timestamp(1700000000123) == 1700000000

    def test_float_seconds(self):
        assert normalize_timestamp(1700000000.9) == 1700000000

    def test_numeric_string(self):
        assert normalize_timestamp("1700000000000") == 1700000000

    def test_iso_string_with_z(self):
        assert normalize_timestamp("2023-11-14T22:13:20Z") == 1700000000

    def test_iso_string_with_offset(self):
        assert normalize_timestamp("2023-11-15T00:13:20+02:00") == 1700000000

    def test_naive_iso_string_is_utc(self):
        """测试无时区的字符串按 UTC 处理"""
        assert normalize_timestamp("2023-11-14 22:13:20") == 1700000000

    def test_none_is_now(self):
        """测试 None 返回当前时间"""
        before = int(time.time())
        value = normalize_timestamp(None)
        assert before <= value <= int(time.time())

    def test_empty_string_is_now(self):
        before = int(time.time())
        assert normalize_timestamp("  ") >= before

    def test_unparseable_string_raises(self):
        """测试无法解析的字符串抛出 ValueError"""
        with pytest.raises(ValueError):
            normalize_timestamp("yesterday afternoon")

    def test_bool_raises(self):
        with pytest.raises(ValueError):
            normalize_timestamp(True)

    def test_nan_raises(self):
        with pytest.raises(ValueError):
            normalize_timestamp(float("nan"))


class TestEpochToIso:
    """测试 Unix 秒转 ISO 8601"""

    def test_epoch_zero(self):
        assert epoch_to_iso(0) == "1970-01-01T00:00:00+00:00"

    def test_none(self):
        assert epoch_to_iso(None) is None

    def test_round_trip(self):
        assert normalize_timestamp(epoch_to_iso(1700000000)) == 1700000000
