"""Directory (LDAP) engine package.

Public API:
    - ConnectionSettings, DirectoryEntry and the LDIF/modification records
    - DirectorySession, SessionRegistry, RegistryStore
    - schema and LDIF helpers
"""

from .errors import ConnectFailed, DirectoryError, NotConnected, OperationFailed
from .models import (
    CertInfo,
    ChangeType,
    ConnectionInfo,
    ConnectionSettings,
    DirectoryEntry,
    LdapModification,
    LdifOperation,
    LdifResult,
    ModificationType,
)
from .schema import (
    Schema,
    SchemaItem,
    get_allowed_attributes,
    get_required_attributes,
    get_typical_rdn_attribute,
    parse_schema_name,
)
from .ldif import apply_ldif, parse_ldif, to_ldif, to_ldif_many
from .session import DirectorySession
from .registry import RegistryStore, SessionRegistry

__all__ = [
    "CertInfo",
    "ChangeType",
    "ConnectFailed",
    "ConnectionInfo",
    "ConnectionSettings",
    "DirectoryEntry",
    "DirectoryError",
    "DirectorySession",
    "LdapModification",
    "LdifOperation",
    "LdifResult",
    "ModificationType",
    "NotConnected",
    "OperationFailed",
    "RegistryStore",
    "Schema",
    "SchemaItem",
    "SessionRegistry",
    "apply_ldif",
    "get_allowed_attributes",
    "get_required_attributes",
    "get_typical_rdn_attribute",
    "parse_ldif",
    "parse_schema_name",
    "to_ldif",
    "to_ldif_many",
]
