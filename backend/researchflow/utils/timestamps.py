"""
时间戳工具

线上传输的时间戳可能是秒、毫秒（数值大于 10^10）或 ISO 8601 字符串，
内部统一存储为 Unix 秒（整数）。
"""
import math
from datetime import datetime, timezone
from typing import Optional, Union

from researchflow.models.constants import EPOCH_MILLIS_THRESHOLD
from researchflow.models.database import epoch_now

TimestampInput = Optional[Union[int, float, str]]


def normalize_timestamp(value: TimestampInput) -> int:
    """
    将任意形式的时间戳转换为 Unix 秒

    Args:
        value: 秒 / 毫秒 / ISO 8601 字符串 / None（None 表示当前时间）

    Returns:
        Unix 时间戳（秒）

    Raises:
        ValueError: 无法解析的字符串
    """
    if value is None:
        return epoch_now()

    if isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, (int, float)):
        number = value
    else:
        text = value.strip()
        if not text:
            return epoch_now()
        try:
            number = float(text)
        except ValueError:
            return _parse_iso(text)

    if not math.isfinite(number):
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if number > EPOCH_MILLIS_THRESHOLD:
        number = number / 1000
    return int(number)


def _parse_iso(text: str) -> int:
    # 兼容 "Z" 结尾及 MySQL 风格的 "YYYY-MM-DD HH:MM:SS"
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def epoch_to_iso(value: Optional[int]) -> Optional[str]:
    """Unix 秒转换为 ISO 8601 字符串（UTC）"""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
