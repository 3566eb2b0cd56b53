"""模型目录过滤：只保留提示和补全价格都为 0 的免费模型。"""

import math
import re
from typing import Any, Dict, Iterable, List


PRICE_EPSILON = 1e-9

# 取字符串开头的数字部分，"0.5abc" 按 0.5 计
_LEADING_NUMBER = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_MODEL_FIELDS = (
    "id",
    "name",
    "description",
    "context_length",
    "architecture",
    "pricing",
    "top_provider",
)


def _price(value: Any) -> float:
    """价格字段是字符串；只读取开头的数字部分，读不出数字或非有限值都按 0 处理。"""

    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        price = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return 0.0
        price = float(match.group(0))
    return price if math.isfinite(price) else 0.0


def is_free_model(model: Dict[str, Any]) -> bool:
    pricing = model.get("pricing") or {}
    if not isinstance(pricing, dict):
        pricing = {}
    prompt = _price(pricing.get("prompt"))
    completion = _price(pricing.get("completion"))
    return abs(prompt) < PRICE_EPSILON and abs(completion) < PRICE_EPSILON


def format_model(model: Dict[str, Any]) -> Dict[str, Any]:
    return {key: model.get(key) for key in _MODEL_FIELDS}


def free_models(items: Iterable[Any]) -> List[Dict[str, Any]]:
    return [format_model(m) for m in items if isinstance(m, dict) and is_free_model(m)]
