"""Schema model: objectClass / attributeType definitions.

Definitions are kept as the raw strings the server returned. Names, OIDs and
MUST/MAY/SUP lists are scanned out of them on demand with a tolerant parser
(not a full RFC 4512 grammar), so imperfect server output degrades to partial
results instead of errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional


@dataclass
class SchemaItem:
    name: str = ""
    oid: Optional[str] = None
    description: Optional[str] = None
    definition: str = ""

    @property
    def names(self) -> list[str]:
        """All names of the item (NAME ( 'a' 'b' ) yields both)."""
        out = _parse_names(self.definition)
        if self.name and self.name not in out:
            out.insert(0, self.name)
        return out

    def matches(self, name: str) -> bool:
        key = (name or "").strip().lower()
        return bool(key) and any(n.lower() == key for n in self.names)


@dataclass
class Schema:
    object_classes: list[SchemaItem] = field(default_factory=list)
    attribute_types: list[SchemaItem] = field(default_factory=list)

    def sort(self) -> None:
        self.object_classes.sort(key=lambda x: x.name.lower())
        self.attribute_types.sort(key=lambda x: x.name.lower())

    def find_object_class(self, name: str) -> SchemaItem | None:
        return _find(self.object_classes, name)

    def find_attribute_type(self, name: str) -> SchemaItem | None:
        return _find(self.attribute_types, name)


def _find(items: list[SchemaItem], name: str) -> SchemaItem | None:
    for it in items:
        if it.matches(name):
            return it
    return None


def _parse_names(definition: str) -> list[str]:
    idx = definition.find("NAME ")
    if idx < 0:
        return []
    after = definition[idx + 5:].lstrip()
    if after.startswith("'"):
        end = after.find("'", 1)
        return [after[1:end]] if end > 0 else []
    if after.startswith("("):
        close = after.find(")")
        inner = after[1:close] if close > 0 else after[1:]
        return [p for p in inner.split("'") if p.strip()]
    return []


def parse_schema_name(definition: str) -> SchemaItem:
    """Scan NAME, OID and DESC out of a raw schema description string."""
    item = SchemaItem(definition=definition)

    idx = definition.find("NAME ")
    if idx >= 0:
        after = definition[idx + 5:].lstrip()
        if after.startswith("'"):
            end = after.find("'", 1)
            if end > 0:
                item.name = after[1:end]
        elif after.startswith("("):
            q1 = after.find("'")
            q2 = after.find("'", q1 + 1)
            if q1 >= 0 and q2 > q1:
                item.name = after[q1 + 1:q2]

    # Numeric OIDs contain dots; bare keywords do not.
    parts = definition.lstrip("(").lstrip().split(" ")
    if parts and "." in parts[0]:
        item.oid = parts[0]

    desc_idx = definition.find("DESC '")
    if desc_idx >= 0:
        after = definition[desc_idx + 6:]
        end = after.find("'")
        if end > 0:
            item.description = after[:end]

    if not item.name:
        item.name = item.oid or "unknown"
    return item


def parse_attribute_list(definition: str, keyword: str) -> list[str]:
    """Names following MUST / MAY / SUP in a definition.

    "( a $ b )" yields ["a", "b"]; a bare token is read up to the next space
    or closing parenthesis. A missing keyword yields an empty list.
    """
    token = f" {keyword} "
    idx = definition.find(token)
    if idx < 0:
        return []
    rest = definition[idx + len(token):].lstrip()
    if rest.startswith("("):
        end = rest.find(")")
        inner = rest[1:end] if end > 0 else rest[1:]
        return [n.strip().strip("'") for n in inner.split("$") if n.strip().strip("'")]

    end = len(rest)
    for stop in (" ", ")"):
        pos = rest.find(stop)
        if 0 <= pos < end:
            end = pos
    name = rest[:end].strip().strip("'")
    return [name] if name else []


def _collect_attributes(schema: Schema, object_classes: Iterable[str], include_may: bool) -> list[str]:
    result: list[str] = []
    seen: set[str] = set()
    visited: set[str] = set()

    def add(names: list[str]) -> None:
        for n in names:
            key = n.lower()
            if key not in seen:
                seen.add(key)
                result.append(n)

    def visit(name: str) -> None:
        key = (name or "").strip().lower()
        if not key or key in visited:
            return
        visited.add(key)

        oc = schema.find_object_class(name)
        if oc is None:
            return
        visited.update(n.lower() for n in oc.names)

        add(parse_attribute_list(oc.definition, "MUST"))
        if include_may:
            add(parse_attribute_list(oc.definition, "MAY"))
        for sup in parse_attribute_list(oc.definition, "SUP"):
            visit(sup)

    for name in object_classes:
        visit(name)

    result.sort(key=str.lower)
    return result


def get_allowed_attributes(schema: Schema, object_classes: Iterable[str]) -> list[str]:
    """MUST + MAY attributes of the classes and all their superiors."""
    return _collect_attributes(schema, object_classes, include_may=True)


def get_required_attributes(schema: Schema, object_classes: Iterable[str]) -> list[str]:
    """MUST attributes of the classes and all their superiors."""
    return _collect_attributes(schema, object_classes, include_may=False)


# Scanned in order: the first class present wins.
_TYPICAL_RDN: list[tuple[str, str]] = [
    ("inetOrgPerson", "cn"),
    ("organizationalPerson", "cn"),
    ("person", "cn"),
    ("organizationalUnit", "ou"),
    ("dcObject", "dc"),
    ("domain", "dc"),
    ("organization", "o"),
    ("groupOfNames", "cn"),
    ("groupOfUniqueNames", "cn"),
    ("posixGroup", "cn"),
    ("locality", "l"),
    ("country", "c"),
    ("account", "uid"),
    ("device", "cn"),
]


def get_typical_rdn_attribute(object_classes: Iterable[str]) -> str | None:
    present = {(n or "").strip().lower() for n in object_classes}
    for oc, attr in _TYPICAL_RDN:
        if oc.lower() in present:
            return attr
    return None
