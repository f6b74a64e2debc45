from __future__ import annotations

import hashlib
import importlib
import uuid
from collections.abc import Iterable, MutableMapping, MutableSequence
from typing import Any


def dict_zip(**kwargs) -> Iterable[MutableMapping[str, Any]]:
    keys = list(kwargs.keys())
    for values in zip(*kwargs.values(), strict=True):
        yield dict(zip(keys, values, strict=True))


def format_seconds_to_hhmmss(seconds: int) -> str:
    hours = seconds // (60 * 60)
    seconds %= 60 * 60
    minutes = seconds // 60
    seconds %= 60
    return "%02i:%02i:%02i" % (hours, minutes, seconds)


def get_object_from_name(name: str) -> Any:
    module_name, _, attr = name.partition(":")
    obj = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def get_option(
    name: str,
    value: Any,
) -> MutableSequence[str]:
    if isinstance(value, bool):
        return [f"--{name}"] if value else []
    elif isinstance(value, str) or isinstance(value, int):
        return [f"--{name}={value}"]
    elif isinstance(value, MutableSequence):
        return [f"--{name}={item}" for item in value]
    elif value is None:
        return []
    else:
        raise TypeError("Unsupported value type")


def random_name() -> str:
    return str(uuid.uuid4())


def remove_empty(record: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    return {
        k: v
        for k, v in record.items()
        if v is not None
        and not (isinstance(v, (str, MutableSequence, MutableMapping)) and len(v) == 0)
    }


def stable_name(prefix: str, *parts: str, length: int = 12) -> str:
    digest = hashlib.sha1("\0".join(parts).encode("utf-8")).hexdigest()  # nosec
    return f"{prefix}{digest[:length]}"
