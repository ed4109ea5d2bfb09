# application/services/template_renderer.py
from __future__ import annotations

import json
import re
from typing import Any, List, Mapping, Optional, Tuple

from domain.run import ScenarioReferenceEntry

_PLACEHOLDER = re.compile(r"\{\{\s*([^}]+)\s*\}\}")
_SOURCES = ("response", "request", "post")


def stringify(value: Any) -> str:
    """
    テンプレート展開・フォーム送信用の文字列化
    - None => ""
    - bool => "true" / "false"
    - 整数値の float => "5"
    - dict / list => JSON
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


class TemplateRenderer:
    """
    {{scenario.<id>.<source>.<path>}} と短縮形
    {{response.<id>.<path>}}, {{request.<id>.<path>}}, {{post.<id>.<path>}} を展開する。

    - <id> は click_trans_id
    - 解決できない参照はすべて空文字（例外は投げない）
    - 展開結果は再スキャンしない
    """

    def resolve(self, raw: str, references: Mapping[str, ScenarioReferenceEntry]) -> str:
        if raw is None:
            return ""
        if "{{" not in raw:
            return raw
        return _PLACEHOLDER.sub(lambda m: self._eval(m.group(1), references), raw)

    def _eval(self, raw_expr: str, references: Mapping[str, ScenarioReferenceEntry]) -> str:
        parsed = self._split(raw_expr.strip())
        if parsed is None:
            return ""
        correlation_id, source, path = parsed

        entry = references.get(correlation_id)
        if entry is None:
            return ""

        value = self._resolve_path(entry.source(source), path)
        return stringify(value)

    def _split(self, expr: str) -> Optional[Tuple[str, str, List[str]]]:
        parts = expr.split(".")
        if len(parts) < 3:
            return None

        scope, second, third, *rest = parts
        if scope == "scenario":
            return second, third, rest
        if scope in _SOURCES:
            return second, scope, [third, *rest]
        return None

    def _resolve_path(self, obj: Any, path: List[str]) -> Any:
        cur = obj
        for part in path:
            # 空セグメント（a..b）は読み飛ばす
            if not part:
                continue
            if not isinstance(cur, Mapping):
                return None
            cur = cur.get(part)
        return cur
