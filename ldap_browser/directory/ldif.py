"""LDIF import/export.

The parser is a tolerant subset of RFC 2849: unknown or malformed lines are
skipped, blocks without a dn are dropped and a block without a changetype is
an add. Operations are returned (and applied) in input order.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import TYPE_CHECKING, Iterable

from .models import ChangeType, DirectoryEntry, LdapModification, LdifOperation, LdifResult, ModificationType
from .utils import is_binary_placeholder

if TYPE_CHECKING:
    from .session import DirectorySession

log = logging.getLogger(__name__)

_BLOCK_SPLIT = re.compile(r"\n[ \t]*\n")

_CHANGE_TYPES = {
    "add": ChangeType.ADD,
    "modify": ChangeType.MODIFY,
    "delete": ChangeType.DELETE,
}

_MOD_TYPES = {
    "add": ModificationType.ADD,
    "replace": ModificationType.REPLACE,
    "delete": ModificationType.DELETE,
}


def _decode_b64(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return value


def _parse_block(lines: list[str]) -> LdifOperation | None:
    op = LdifOperation()
    dn: str | None = None
    change_type: ChangeType | None = None
    mod_attr: str | None = None
    mod_type: ModificationType | None = None
    # Modification opened by "add:/replace:/delete:" that has no value yet.
    pending: LdapModification | None = None

    for line in lines:
        if line.strip() == "-":
            mod_attr = None
            mod_type = None
            pending = None
            continue

        colon = line.find(":")
        if colon < 0:
            log.debug("ldif: skipping line without colon: %r", line[:80])
            continue

        key = line[:colon].strip()
        value = line[colon + 1:].lstrip()
        if value.startswith(":"):
            value = _decode_b64(value[1:].lstrip())

        lkey = key.lower()
        if lkey == "dn":
            dn = value
            op.dn = value
        elif lkey == "changetype":
            change_type = _CHANGE_TYPES.get(value.strip().lower(), ChangeType.ADD)
            op.change_type = change_type
        elif lkey in _MOD_TYPES and change_type == ChangeType.MODIFY:
            mod_attr = value.strip()
            mod_type = _MOD_TYPES[lkey]
            pending = LdapModification(attribute_name=mod_attr, type=mod_type)
            op.modifications.append(pending)
        elif mod_attr is not None and mod_type is not None and lkey == mod_attr.lower():
            if pending is not None:
                mod = pending
                pending = None
            else:
                mod = LdapModification(attribute_name=mod_attr, type=mod_type)
                op.modifications.append(mod)
            if mod_type == ModificationType.DELETE:
                mod.old_value = value
            else:
                mod.new_value = value
        else:
            op.attributes.setdefault(key, []).append(value)

    if dn is None:
        return None
    if change_type is None:
        op.change_type = ChangeType.ADD
    return op


def parse_ldif(content: str) -> list[LdifOperation]:
    """Parse LDIF text into change operations, in input order."""
    operations: list[LdifOperation] = []
    text = (content or "").replace("\r\n", "\n")

    for block in _BLOCK_SPLIT.split(text):
        lines = [ln.rstrip("\r") for ln in block.split("\n")]
        lines = [ln for ln in lines if ln.strip() and not ln.startswith("#")]
        if not lines:
            continue
        op = _parse_block(lines)
        if op is None:
            log.debug("ldif: dropping block without dn (%d lines)", len(lines))
            continue
        operations.append(op)

    return operations


def apply_ldif(session: "DirectorySession", operations: Iterable[LdifOperation]) -> list[LdifResult]:
    """Apply operations one by one; a failure is recorded and the batch goes on."""
    results: list[LdifResult] = []

    for op in operations:
        result = LdifResult(dn=op.dn, change_type=op.change_type)
        try:
            if op.change_type == ChangeType.ADD:
                session.create_entry(op.dn, op.attributes)
            elif op.change_type == ChangeType.MODIFY:
                session.modify_entry(op.dn, op.modifications)
            elif op.change_type == ChangeType.DELETE:
                session.delete_entry(op.dn)
            result.success = True
        except Exception as e:
            result.success = False
            result.error = str(e) or e.__class__.__name__
            log.warning("ldif: %s %s failed: %s", op.change_type.value, op.dn, result.error)
        results.append(result)

    ok = sum(1 for r in results if r.success)
    log.info("ldif: applied %d/%d operations", ok, len(results))
    return results


def _needs_base64(value: str) -> bool:
    if not value:
        return False
    if value[0] in " :<" or value[-1] == " ":
        return True
    return any(ch in value for ch in "\n\r\x00")


def _line(name: str, value: str) -> str:
    if _needs_base64(value):
        return f"{name}:: {base64.b64encode(value.encode('utf-8')).decode('ascii')}"
    return f"{name}: {value}"


def to_ldif(entry: DirectoryEntry) -> str:
    """One entry as an LDIF block (attributes sorted by name).

    Binary placeholders become a value-less "attr:: " line; the original
    bytes are not part of the text model.
    """
    out: list[str] = [_line("dn", entry.dn)]
    for name in sorted(entry.attributes.keys(), key=lambda k: (k.lower(), k)):
        for val in entry.attributes[name]:
            if is_binary_placeholder(val):
                out.append(f"{name}:: ")
            else:
                out.append(_line(name, val))
    return "\n".join(out) + "\n"


def to_ldif_many(entries: Iterable[DirectoryEntry]) -> str:
    return "".join(to_ldif(e) + "\n" for e in entries)
