"""Agent 工具函数。"""
from __future__ import annotations

import json
from datetime import datetime, UTC


def utcnow() -> datetime:
    """返回当前 UTC 时间（无时区信息，兼容 PostgreSQL TIMESTAMP WITHOUT TIME ZONE）。"""
    return datetime.now(UTC).replace(tzinfo=None)


def strip_code_fence(text: str) -> str:
    """移除 ```json ... ``` 代码块标记"""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.split("\n")
    if lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines).strip()


def extract_json(text: str) -> dict:
    """从 LLM 响应中提取 JSON 对象。

    只容忍代码块标记和对象前后的说明文字，不做任何结构修复。
    """
    text = strip_code_fence(text)

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("LLM 响应中未找到 JSON 对象")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ValueError(f"无法解析 LLM 响应的 JSON: {text[start:start + 200]}...") from exc
    if not isinstance(data, dict):
        raise ValueError("LLM 响应中未找到 JSON 对象")
    return data


def split_data_url(value: str, default_media_type: str = "image/jpeg") -> tuple[str, str]:
    """把 data:image/png;base64,xxx 拆成 (media_type, base64)"""
    if value.startswith("data:") and "," in value:
        header, data = value.split(",", 1)
        media_type = header[5:].split(";", 1)[0] or default_media_type
        return media_type, data
    return default_media_type, value
