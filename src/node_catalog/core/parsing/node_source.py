"""Node source parser.

Turns a ``RawEntry`` (a ``*.node.ts`` file) into a ``NodeRecord`` by locating
the node's description object literal and mapping its fields. Malformed but
readable input produces a ``ParseFailure`` rather than an exception.

Description blocks are found in three forms, merged in this order (later keys
win):

- ``const baseDescription: INodeTypeBaseDescription = {...}`` (versioned nodes)
- ``const versionDescription: INodeTypeDescription = {...}``
- ``description: INodeTypeDescription = {...}`` / ``this.description = {...}``
"""

import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError

from node_catalog.core.discovery.types import NodeRecord, ParseFailure, RawEntry
from node_catalog.core.errors import LiteralSyntaxError
from node_catalog.core.parsing.literal import read_object_literal

logger = logging.getLogger(__name__)

_TYPE_ANNOTATION = r"(?::\s*[A-Za-z_$][\w$.<>\[\]|, ]*?)?"

# Ordered lowest to highest precedence
_DESCRIPTION_PATTERNS = [
    re.compile(rf"\bbaseDescription\s*{_TYPE_ANNOTATION}\s*=\s*(?=\{{)"),
    re.compile(rf"\bversionDescription\s*{_TYPE_ANNOTATION}\s*=\s*(?=\{{)"),
    re.compile(rf"(?<![\w$])description\s*{_TYPE_ANNOTATION}\s*=\s*(?=\{{)"),
]

_TRIGGER_GROUPS = {"trigger", "schedule"}


class NodeParser(Protocol):
    """Anything that can turn raw node source into a record."""

    def parse(self, entry: RawEntry) -> Union[NodeRecord, ParseFailure]:
        ...


def _camel_case(name: str) -> str:
    return name[:1].lower() + name[1:] if name else name


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class NodeSourceParser:
    """Default NodeParser for n8n-style node source files."""

    def __init__(self, default_category: str = "misc"):
        self.default_category = default_category

    def parse(self, entry: RawEntry) -> Union[NodeRecord, ParseFailure]:
        """Parse one raw entry.

        Returns:
            NodeRecord, or ParseFailure describing why the entry was rejected
        """
        try:
            description = self.extract_description(entry.source_text)
        except LiteralSyntaxError as exc:
            return self._failure(entry, f"unreadable description literal: {exc}")

        if description is None:
            return self._failure(entry, "no node description found")

        try:
            return self._build_record(entry, description)
        except ValidationError as exc:
            return self._failure(entry, f"invalid node description: {exc.error_count()} error(s)")
        except ValueError as exc:
            return self._failure(entry, str(exc))

    def extract_description(self, source_text: str) -> Optional[Dict[str, Any]]:
        """Find and merge the description object literals in ``source_text``.

        Returns:
            The merged description, or None if the source declares none

        Raises:
            LiteralSyntaxError: If a description literal is malformed
        """
        merged: Dict[str, Any] = {}
        found = False
        for pattern in _DESCRIPTION_PATTERNS:
            for match in pattern.finditer(source_text):
                obj, _ = read_object_literal(source_text, match.end())
                merged.update(obj)
                found = True
        return merged if found else None

    # ------------------------------------------------------------------
    # Field mapping
    # ------------------------------------------------------------------

    def _failure(self, entry: RawEntry, reason: str) -> ParseFailure:
        logger.debug("Rejected %s: %s", entry.source_path, reason)
        return ParseFailure(entry_name=entry.name, source_path=entry.source_path, reason=reason)

    def _build_record(self, entry: RawEntry, desc: Dict[str, Any]) -> NodeRecord:
        raw_name = desc.get("name")
        if not isinstance(raw_name, str) or not raw_name:
            raw_name = _camel_case(entry.name)
        if not raw_name:
            raise ValueError("node has no name")

        if entry.package_name and "." not in raw_name:
            name = f"{entry.package_name}.{raw_name}"
        else:
            name = raw_name

        groups = _string_list(desc.get("group"))
        category = groups[0] if groups else desc.get("category")
        if not isinstance(category, str) or not category:
            category = self.default_category

        subcategory = desc.get("subcategory")
        properties = _dict_items(desc.get("properties"))
        version = self._version(desc)

        display_name = desc.get("displayName")
        if not isinstance(display_name, str) or not display_name:
            display_name = entry.name

        summary = desc.get("description")
        documentation_url = desc.get("documentationUrl")

        return NodeRecord(
            name=name,
            display_name=display_name,
            description=summary if isinstance(summary, str) else "",
            category=category,
            subcategory=subcategory if isinstance(subcategory, str) else None,
            version=version,
            properties=properties,
            credentials=_dict_items(desc.get("credentials")),
            operations=self._operations(properties),
            is_trigger=self._is_trigger(raw_name, groups, desc),
            is_webhook=bool(_dict_items(desc.get("webhooks"))),
            is_ai_tool=desc.get("usableAsTool") is True,
            is_versioned=isinstance(desc.get("version"), list) or "defaultVersion" in desc,
            package_name=entry.package_name,
            style=self._style(desc, properties),
            documentation_url=documentation_url if isinstance(documentation_url, str) else None,
        )

    def _version(self, desc: Dict[str, Any]) -> Union[int, float, List[Union[int, float]]]:
        version = desc.get("version")
        if _is_number(version):
            return version
        if isinstance(version, list):
            numbers = [v for v in version if _is_number(v)]
            if numbers:
                return numbers
        default_version = desc.get("defaultVersion")
        if _is_number(default_version):
            return default_version
        return 1

    def _is_trigger(self, raw_name: str, groups: List[str], desc: Dict[str, Any]) -> bool:
        return (
            bool(_TRIGGER_GROUPS.intersection(groups))
            or desc.get("polling") is True
            or "eventTriggerDescription" in desc
            or raw_name.lower().endswith("trigger")
        )

    def _style(self, desc: Dict[str, Any], properties: List[Dict[str, Any]]) -> str:
        if "requestDefaults" in desc or any("routing" in prop for prop in properties):
            return "declarative"
        return "programmatic"

    def _operations(self, properties: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Collect the options of every ``operation`` property, tagged with their resource."""
        operations: List[Dict[str, Any]] = []
        seen = set()
        for prop in properties:
            if prop.get("name") != "operation":
                continue
            display_options = prop.get("displayOptions")
            show = display_options.get("show") if isinstance(display_options, dict) else None
            if not isinstance(show, dict):
                show = {}
            resources = _string_list(show.get("resource")) or [None]
            for option in _dict_items(prop.get("options")):
                for resource in resources:
                    key = (resource, repr(option.get("value")))
                    if key in seen:
                        continue
                    seen.add(key)
                    operation = {
                        "name": option.get("name"),
                        "value": option.get("value"),
                        "description": option.get("description", ""),
                    }
                    if option.get("action"):
                        operation["action"] = option["action"]
                    if resource is not None:
                        operation["resource"] = resource
                    operations.append(operation)
        return operations
