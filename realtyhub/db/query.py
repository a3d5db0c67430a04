"""
In-process evaluation of Mongo-style filters and update documents.

Covers the subset the models use: dotted paths, equality (including
"value in array"), $or/$and/$nor, comparison operators, $in/$nin,
$exists, $regex (or compiled patterns), $elemMatch, and the $set, $unset,
$inc and $push update operators.
"""

import copy
import re
from typing import Any, Dict, List, Optional

_MISSING = object()


def get_path(document: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path; numeric parts index into lists"""
    current: Any = document
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


def set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted path, creating intermediate objects"""
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        if isinstance(current, list) and part.isdigit():
            current = current[int(part)]
            continue
        nxt = current.get(part)
        if not isinstance(nxt, (dict, list)):
            nxt = {}
            current[part] = nxt
        current = nxt
    last = parts[-1]
    if isinstance(current, list) and last.isdigit():
        current[int(last)] = value
    else:
        current[last] = value


def unset_path(document: Dict[str, Any], path: str) -> None:
    parts = path.split(".")
    parent = get_path(document, ".".join(parts[:-1])) if len(parts) > 1 else document
    if isinstance(parent, dict):
        parent.pop(parts[-1], None)


def _compile_regex(pattern: Any, options: str = "") -> "re.Pattern[str]":
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    if "i" in options:
        flags |= re.IGNORECASE
    if "m" in options:
        flags |= re.MULTILINE
    if "s" in options:
        flags |= re.DOTALL
    if "x" in options:
        flags |= re.VERBOSE
    return re.compile(pattern, flags)


def _regex_matches(regex: "re.Pattern[str]", value: Any) -> bool:
    if isinstance(value, list):
        return any(_regex_matches(regex, item) for item in value)
    return isinstance(value, str) and regex.search(value) is not None


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compare(value: Any, expected: Any, op: str) -> bool:
    if value is _MISSING or value is None:
        return False
    if isinstance(value, list):
        return any(_compare(item, expected, op) for item in value)
    try:
        if op == "$gt":
            return value > expected
        if op == "$gte":
            return value >= expected
        if op == "$lt":
            return value < expected
        return value <= expected
    except TypeError:
        return False


def _is_operator_dict(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(k.startswith("$") for k in condition)


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, re.Pattern):
        return value is not _MISSING and _regex_matches(condition, value)

    if not _is_operator_dict(condition):
        return _equals(value, condition)

    for op, operand in condition.items():
        if op == "$eq":
            ok = _equals(value, operand)
        elif op == "$ne":
            ok = not _equals(value, operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(value, operand, op)
        elif op == "$in":
            ok = any(_match_condition(value, item) for item in operand)
        elif op == "$nin":
            ok = not any(_match_condition(value, item) for item in operand)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(operand)
        elif op == "$regex":
            ok = value is not _MISSING and _regex_matches(
                _compile_regex(operand, condition.get("$options", "")), value
            )
        elif op == "$options":
            ok = True
        elif op == "$elemMatch":
            ok = isinstance(value, list) and any(
                isinstance(item, dict) and matches(item, operand) for item in value
            )
        elif op == "$not":
            ok = not _match_condition(value, operand)
        else:
            raise ValueError(f"Unsupported query operator: {op}")
        if not ok:
            return False
    return True


def matches(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """True when ``document`` satisfies every clause of ``query``"""
    if not query:
        return True
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in condition):
                return False
        else:
            if not _match_condition(get_path(document, key, _MISSING), condition):
                return False
    return True


def apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Apply an update document in place and return ``document``"""
    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                set_path(document, path, copy.deepcopy(value))
        elif op == "$unset":
            for path in fields:
                unset_path(document, path)
        elif op == "$inc":
            for path, amount in fields.items():
                current = get_path(document, path, 0) or 0
                set_path(document, path, current + amount)
        elif op == "$push":
            for path, value in fields.items():
                _push(document, path, value)
        else:
            raise ValueError(f"Unsupported update operator: {op}")
    return document


def _push(document: Dict[str, Any], path: str, value: Any) -> None:
    current = get_path(document, path)
    items: List[Any] = list(current) if isinstance(current, list) else []
    if _is_operator_dict(value) and "$each" in value:
        new_items = copy.deepcopy(list(value["$each"]))
        position = value.get("$position")
        if position is None:
            items.extend(new_items)
        else:
            items[position:position] = new_items
        if "$slice" in value:
            limit = value["$slice"]
            items = items[:limit] if limit >= 0 else items[limit:]
    else:
        items.append(copy.deepcopy(value))
    set_path(document, path, items)


def is_update_document(update: Dict[str, Any]) -> bool:
    return bool(update) and all(key.startswith("$") for key in update)
