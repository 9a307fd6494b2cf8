from __future__ import annotations

BINARY_PREFIX = "[Binary:"


def binary_placeholder(size: int) -> str:
    return f"{BINARY_PREFIX} {size} bytes]"


def is_binary_placeholder(value: str) -> bool:
    return value.startswith(BINARY_PREFIX)


def decode_value(raw: bytes | str) -> str:
    """Decode a raw attribute value for the text model.

    Values that are not valid UTF-8, or that contain control characters other
    than newline/CR/tab, are replaced with a placeholder carrying their size.
    """
    if isinstance(raw, str):
        return raw
    try:
        text = bytes(raw).decode("utf-8")
    except UnicodeDecodeError:
        return binary_placeholder(len(raw))
    for ch in text:
        if ch in "\n\r\t":
            continue
        if ord(ch) < 0x20 or 0x7F <= ord(ch) <= 0x9F:
            return binary_placeholder(len(raw))
    return text


def rdn_value(dn: str) -> str:
    """Return the value of the first RDN ("cn=Max,ou=People,dc=test" -> "Max")."""
    idx = dn.find(",")
    rdn = dn[:idx] if idx > 0 else dn
    eq = rdn.find("=")
    return rdn[eq + 1:] if eq > 0 else rdn


def parent_dn(dn: str) -> str:
    """DN without its first RDN (escaped commas are not separators)."""
    esc = False
    for i, ch in enumerate(dn):
        if esc:
            esc = False
            continue
        if ch == "\\":
            esc = True
            continue
        if ch == ",":
            return dn[i + 1:].strip()
    return ""


def first_ou_component(dn: str) -> str | None:
    """First comma-separated component starting with "ou=" (trimmed), if any."""
    for part in dn.split(","):
        p = part.strip()
        if p.lower().startswith("ou="):
            return p
    return None


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def build_attribute_filter(attribute: str, value: str) -> str:
    """Substring filter for a simple attribute/value search box.

    An empty value matches presence of the attribute.
    """
    attribute = (attribute or "").strip() or "objectClass"
    value = (value or "").strip()
    if not value:
        return f"({attribute}=*)"
    return f"({attribute}=*{escape_ldap_filter_value(value)}*)"
