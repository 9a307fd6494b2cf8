from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ldap3.utils.ciDict import CaseInsensitiveDict
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import rdn_value


class ConnectionSettings(BaseModel):
    """How to reach one directory server. Immutable once a session uses it."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", max_length=128)
    server: str = Field(..., max_length=255)
    port: int = Field(default=389, ge=1, le=65535)
    base_dn: str = Field(...)
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None, repr=False)
    use_ssl: bool = Field(default=False)

    @field_validator("name", "server", "base_dn")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("server")
    @classmethod
    def _server_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Server is required.")
        return v

    @field_validator("base_dn")
    @classmethod
    def _base_dn_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Base DN is required.")
        return v

    @property
    def display_name(self) -> str:
        return self.name or f"{self.server}:{self.port}"

    @property
    def has_credentials(self) -> bool:
        return bool((self.username or "").strip())


@dataclass(frozen=True)
class DirectoryEntry:
    dn: str
    attributes: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    @property
    def display_name(self) -> str:
        return rdn_value(self.dn)

    def to_dict(self) -> dict:
        return {
            "dn": self.dn,
            "display_name": self.display_name,
            "attributes": {k: list(v) for k, v in self.attributes.items()},
        }


class ModificationType(str, Enum):
    ADD = "add"
    REPLACE = "replace"
    DELETE = "delete"


class ChangeType(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass
class LdapModification:
    attribute_name: str
    type: ModificationType = ModificationType.REPLACE
    new_value: Optional[str] = None
    # Delete without old_value removes every value of the attribute.
    old_value: Optional[str] = None


@dataclass
class LdifOperation:
    dn: str = ""
    change_type: ChangeType = ChangeType.ADD
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    modifications: List[LdapModification] = field(default_factory=list)


@dataclass
class LdifResult:
    dn: str
    change_type: ChangeType
    success: bool = False
    error: Optional[str] = None


@dataclass
class ConnectionInfo:
    id: str
    name: str
    is_active: bool


@dataclass
class CertInfo:
    subject: str
    issuer: str
    not_before: str
    not_after: str
    serial_number: str
