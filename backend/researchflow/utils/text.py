"""
文本处理工具

- strip_tags: 去除 HTML 标签
- normalize_content: 生成用于相等比较的规范化文本（不作为存储值）
- sanitize_plain_text: 纯文本字段清洗（旧版数据迁移用）
"""
import html
import re

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_tags(value: str | None) -> str:
    """去除 HTML 标签，保留文本内容"""
    if not value:
        return ""
    return _TAG_RE.sub("", value)


def normalize_content(value: str | None) -> str:
    """
    规范化内容（仅用于比较）

    去标签、反转义实体、合并连续空白、去首尾空白。
    "<b>Idea  A</b>" 与 "Idea A" 规范化后相等。
    """
    text = html.unescape(strip_tags(value))
    return _WHITESPACE_RE.sub(" ", text).strip()


def sanitize_plain_text(value: object, max_length: int = 1000) -> str:
    """
    纯文本字段清洗

    非字符串输入返回空字符串；去标签、去首尾空白并截断到 max_length。
    """
    if not isinstance(value, str):
        return ""
    return strip_tags(value).strip()[:max_length]
