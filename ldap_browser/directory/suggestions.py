"""Attribute names offered by entry editors for autocomplete."""

from __future__ import annotations

COMMON_ATTRIBUTES: tuple[str, ...] = (
    # identity
    "cn", "sn", "givenName", "displayName", "uid", "uidNumber", "gidNumber",
    "userPassword", "title", "initials", "description",
    # contact
    "mail", "telephoneNumber", "facsimileTelephoneNumber", "mobile",
    "homePhone", "pager", "labeledURI",
    # address
    "street", "l", "st", "postalCode", "postalAddress",
    "postOfficeBox", "c", "co", "preferredLanguage",
    # organization
    "o", "ou", "businessCategory", "departmentNumber",
    "employeeNumber", "employeeType", "manager", "secretary",
    "objectClass",
    # groups
    "member", "uniqueMember", "memberOf", "memberUid", "owner", "seeAlso",
    # posix
    "homeDirectory", "loginShell", "gecos",
    # X.500
    "serialNumber", "destinationIndicator", "registeredAddress",
    "preferredDeliveryMethod", "physicalDeliveryOfficeName",
    "teletexTerminalIdentifier", "x121Address",
    # AD-like
    "sAMAccountName", "userPrincipalName", "distinguishedName",
    "whenCreated", "whenChanged",
    # certificates / keys
    "userCertificate", "userSMIMECertificate", "userPKCS12",
    "sshPublicKey", "authorizedService",
    # binary
    "jpegPhoto", "photo", "audio",
    # network
    "dNSHostName", "ipHostNumber", "macAddress",
    # operational
    "structuralObjectClass", "entryDN", "subschemaSubentry",
    "hasSubordinates", "numSubordinates",
    "roomNumber", "carLicense", "info", "comment",
)


def suggest_attributes(text: str, limit: int | None = None) -> list[str]:
    """Names containing `text` (case-insensitive), prefix matches first."""
    q = (text or "").strip().lower()
    if not q:
        items = list(COMMON_ATTRIBUTES)
    else:
        items = [a for a in COMMON_ATTRIBUTES if q in a.lower()]
        items.sort(key=lambda a: (not a.lower().startswith(q), a))
    if limit is not None:
        items = items[:max(0, limit)]
    return items
