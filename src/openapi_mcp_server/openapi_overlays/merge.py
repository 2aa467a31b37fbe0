"""Merge helpers shared by formal and legacy overlay application."""

import collections.abc
import copy
from typing import Any, Callable, Dict, Hashable, List, Optional

from .models import LegacyOverlay

HTTP_METHODS = {"get", "put", "post", "delete", "patch", "head", "options", "trace"}


def deep_merge(d: Dict[str, Any], u: collections.abc.Mapping) -> Dict[str, Any]:
    """
    Merge two dictionaries recursively.

    Nested mappings are merged, lists are concatenated (``d``'s items first)
    and any other value from ``u`` replaces the one in ``d``. Values taken
    from ``u`` are copied so the result never shares state with it.

    :param d: The dictionary to merge into.
    :param u: The dictionary to merge from.
    :return: The merged dictionary.
    """
    for k, v in u.items():
        current = d.get(k)
        if isinstance(v, collections.abc.Mapping) and isinstance(current, dict):
            d[k] = deep_merge(current, v)
        elif isinstance(v, list) and isinstance(current, list):
            current.extend(copy.deepcopy(v))
        else:
            d[k] = copy.deepcopy(v)
    return d


def merge_by_identity(
    base: List[Any],
    updates: List[Any],
    identity: Callable[[Dict[str, Any]], Optional[Hashable]],
) -> List[Any]:
    """Merge ``updates`` into ``base`` matching items by ``identity``.

    Matching items are shallow-merged in place of the original; everything
    else is appended. Items without an identity are always appended.
    """
    merged = list(base)
    for item in updates:
        key = identity(item) if isinstance(item, dict) else None
        if key is None:
            merged.append(copy.deepcopy(item))
            continue
        for index, existing in enumerate(merged):
            if isinstance(existing, dict) and identity(existing) == key:
                merged[index] = {**existing, **copy.deepcopy(item)}
                break
        else:
            merged.append(copy.deepcopy(item))
    return merged


def parameter_identity(parameter: Dict[str, Any]) -> Optional[Hashable]:
    """Parameters are unique per (name, in); references by their target."""
    if "$ref" in parameter:
        return ("$ref", parameter["$ref"])
    if "name" in parameter:
        return (parameter["name"], parameter.get("in"))
    return None


def tag_identity(tag: Dict[str, Any]) -> Optional[Hashable]:
    return tag.get("name")


def _merge_operation(base: Any, update: Dict[str, Any]) -> Dict[str, Any]:
    operation = dict(base) if isinstance(base, dict) else {}
    base_parameters = operation.get("parameters") or []
    for key, value in update.items():
        if key == "parameters" and isinstance(value, list):
            operation[key] = merge_by_identity(
                base_parameters, value, parameter_identity
            )
        else:
            operation[key] = copy.deepcopy(value)
    return operation


def _merge_paths(paths: Dict[str, Any], updates: Dict[str, Any]) -> None:
    for path, path_item in updates.items():
        if not isinstance(path_item, dict):
            paths[path] = copy.deepcopy(path_item)
            continue

        base_item = paths.get(path)
        if not isinstance(base_item, dict):
            base_item = {}
            paths[path] = base_item

        for key, value in path_item.items():
            if key.lower() in HTTP_METHODS and isinstance(value, dict):
                base_item[key] = _merge_operation(base_item.get(key), value)
            elif key == "parameters" and isinstance(value, list):
                base_item[key] = merge_by_identity(
                    base_item.get(key) or [], value, parameter_identity
                )
            else:
                base_item[key] = copy.deepcopy(value)


def apply_legacy_overlay(
    document: Dict[str, Any], overlay: LegacyOverlay
) -> Dict[str, Any]:
    """Merge a legacy overlay into ``document`` in a single pass.

    ``document`` is modified in place and returned. Sections the overlay does
    not mention are left alone.
    """
    if overlay.info is not None:
        info = document.get("info")
        document["info"] = {
            **(info if isinstance(info, dict) else {}),
            **copy.deepcopy(overlay.info),
        }

    if overlay.paths:
        paths = document.get("paths")
        if not isinstance(paths, dict):
            paths = {}
            document["paths"] = paths
        _merge_paths(paths, overlay.paths)

    if overlay.components:
        components = document.get("components")
        if not isinstance(components, dict):
            components = {}
            document["components"] = components
        for category, entries in overlay.components.items():
            existing = components.get(category)
            if isinstance(existing, dict) and isinstance(entries, dict):
                components[category] = {**existing, **copy.deepcopy(entries)}
            else:
                components[category] = copy.deepcopy(entries)

    if overlay.tags is not None:
        document["tags"] = merge_by_identity(
            document.get("tags") or [], overlay.tags, tag_identity
        )

    if overlay.servers is not None:
        document["servers"] = copy.deepcopy(overlay.servers)

    return document
