from __future__ import annotations
from typing import Any
import datetime
import decimal

# 按声明类型估算的默认显示宽度（流式输出、来不及看数据时使用）
_TYPE_WIDTHS = (
    (("BOOL",), 5),
    (("TINYINT", "SMALLINT", "INT2"), 6),
    (("BIGINT", "HUGEINT", "INT8", "UBIGINT"), 20),
    (("INT",), 11),
    (("DECIMAL", "NUMERIC", "NUMBER"), 20),
    (("FLOAT", "DOUBLE", "REAL"), 24),
    (("TIMESTAMP", "DATETIME"), 26),
    (("DATE",), 10),
    (("TIME",), 15),
    (("UUID",), 36),
)

DEFAULT_WIDTH = 20


def normalize_type(t: str) -> str:
    return (t or "").upper()


def default_width(col_type: str, max_width: int) -> int:
    """根据声明类型给出列宽；未知类型（字符串等）取 min(DEFAULT_WIDTH, max_width)。"""
    t = normalize_type(col_type)
    for names, width in _TYPE_WIDTHS:
        if any(n in t for n in names):
            return min(width, max_width)
    return min(DEFAULT_WIDTH, max_width)


def cell_text(value: Any, null_marker: str = "NULL") -> str:
    """单元格转文本：None 用空值标记，其余按常见类型格式化。"""
    if value is None:
        return null_marker
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat(sep=" ") if isinstance(value, datetime.datetime) else value.isoformat()
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


def json_value(value: Any) -> Any:
    """转成 json 可序列化的值；None 保持为 null。"""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, (list, tuple)):
        return [json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): json_value(v) for k, v in value.items()}
    return cell_text(value)
