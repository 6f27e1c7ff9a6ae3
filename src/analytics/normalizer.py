"""subscribe_list / product_list 字段标准化

数据库里的订阅字段可能是数组、JSON字符串、逗号分隔字符串或嵌套对象。
这里先判断输入形态，再按形态转换成统一的类型；任何输入都不会抛异常，
解析失败时退化为空列表或字符串化结果。
"""
import json
import logging
from enum import Enum
from typing import Any, List, Optional, Tuple

from src.data.models import ProductEntry

logger = logging.getLogger(__name__)

NAME_KEYS = ('product_name', 'name', 'product')
NESTED_KEY = 'product_list'


class FieldShape(Enum):
    """订阅字段的输入形态"""
    MISSING = "missing"
    LIST = "list"
    JSON_LIST_STRING = "json_list_string"
    DELIMITED_STRING = "delimited_string"
    OBJECT = "object"
    UNSUPPORTED = "unsupported"


def decode_shape(value: Any) -> Tuple[FieldShape, Any]:
    """判断输入形态，JSON字符串会被解码"""
    if value is None:
        return FieldShape.MISSING, None
    if isinstance(value, (list, tuple)):
        return FieldShape.LIST, list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (ValueError, RecursionError):
            return FieldShape.DELIMITED_STRING, value
        if isinstance(parsed, list):
            return FieldShape.JSON_LIST_STRING, parsed
        return FieldShape.DELIMITED_STRING, value
    if isinstance(value, dict):
        return FieldShape.OBJECT, value
    return FieldShape.UNSUPPORTED, value


def normalize_name(value: Optional[str]) -> str:
    """产品名比较前统一去空格、转小写"""
    if value is None:
        return ''
    return str(value).strip().lower()


def _coerce_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _name_candidate(obj: dict) -> Any:
    """依次取 product_name / name / product 中第一个非空键"""
    for key in NAME_KEYS:
        if obj.get(key) is not None:
            return obj[key]
    return None


def _serialize(obj: dict) -> str:
    try:
        return json.dumps(obj, ensure_ascii=False, separators=(',', ':'))
    except (TypeError, ValueError, RecursionError):
        return '[object]'


def _subscribe_item(item: Any) -> Tuple[str, bool]:
    if item is None:
        return '', False
    if isinstance(item, dict):
        candidate = _name_candidate(item)
        if candidate:
            return _coerce_text(candidate), False
        return _serialize(item), True
    return _coerce_text(item), False


def normalize_subscribe_list(value: Any) -> Tuple[List[str], bool]:
    """返回 (订阅名列表, 是否发生了降级解析)"""
    shape, payload = decode_shape(value)

    if shape is FieldShape.MISSING:
        return [], False

    if shape in (FieldShape.LIST, FieldShape.JSON_LIST_STRING):
        names, fallback = [], False
        for item in payload:
            text, degraded = _subscribe_item(item)
            fallback = fallback or degraded
            if text.strip():
                names.append(text)
        return names, fallback

    if shape is FieldShape.DELIMITED_STRING:
        return [part.strip() for part in payload.split(',') if part.strip()], False

    if shape is FieldShape.OBJECT:
        if isinstance(payload.get(NESTED_KEY), list):
            return normalize_subscribe_list(payload[NESTED_KEY])
        candidate = _name_candidate(payload)
        if candidate:
            return [_coerce_text(candidate)], False
        return [_serialize(payload)], True

    return [], True


def _product_entry(obj: dict) -> ProductEntry:
    name = _name_candidate(obj)
    expired_at = obj.get('expired_at')
    return ProductEntry(
        name=_coerce_text(name) if name is not None else None,
        expired_at=_coerce_text(expired_at) if expired_at is not None else None
    )


def normalize_product_list(value: Any) -> Tuple[List[ProductEntry], bool]:
    """返回 (产品条目列表, 是否发生了降级解析)"""
    shape, payload = decode_shape(value)

    if shape is FieldShape.MISSING:
        return [], False

    if shape in (FieldShape.LIST, FieldShape.JSON_LIST_STRING):
        entries, fallback = [], False
        for item in payload:
            if isinstance(item, dict):
                if isinstance(item.get(NESTED_KEY), list):
                    # subscribe_list 条目里嵌套的 product_list
                    nested, degraded = normalize_product_list(item[NESTED_KEY])
                    entries.extend(nested)
                    fallback = fallback or degraded
                    continue
                entries.append(_product_entry(item))
            elif item is not None:
                entries.append(ProductEntry(name=_coerce_text(item)))
        return entries, fallback

    if shape is FieldShape.OBJECT:
        if isinstance(payload.get(NESTED_KEY), list):
            return normalize_product_list(payload[NESTED_KEY])
        if _name_candidate(payload):
            return [_product_entry(payload)], False
        return [], True

    # 非JSON数组的字符串、其他类型都没有可用的产品信息
    return [], True


def to_subscribe_list(value: Any) -> List[str]:
    try:
        names, fallback = normalize_subscribe_list(value)
    except RecursionError:
        # 嵌套过深的 product_list
        names, fallback = [], True
    if fallback:
        logger.debug(f"subscribe_list degraded while parsing {type(value).__name__} value")
    return names


def to_product_list(value: Any) -> List[ProductEntry]:
    try:
        entries, fallback = normalize_product_list(value)
    except RecursionError:
        entries, fallback = [], True
    if fallback:
        logger.debug(f"product_list degraded while parsing {type(value).__name__} value")
    return entries
