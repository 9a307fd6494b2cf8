from __future__ import annotations

import os

os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ["LOG_DIR"] = ""

import re
import threading
import time

import ldap3
import pytest
from ldap3.core.exceptions import LDAPCommunicationError, LDAPSocketOpenError
from ldap3.utils.ciDict import CaseInsensitiveDict

from ldap_browser.directory import session as session_module
from ldap_browser.directory.models import ConnectionSettings
from ldap_browser.directory.utils import parent_dn
from ldap_browser.env_settings import get_env

get_env.cache_clear()

HOST = "ldap.example.test"
BASE_DN = "dc=example,dc=com"
ADMIN_DN = "cn=admin,dc=example,dc=com"
ADMIN_PASSWORD = "secret"

ALICE_PASSWORD = "alice-pw"

# (dn, attributes) of the test directory, parents first
TREE = [
    (BASE_DN, {"objectClass": ["top", "domain"], "dc": "example"}),
    (
        ADMIN_DN,
        {"objectClass": ["top", "organizationalRole"], "cn": "admin", "userPassword": ADMIN_PASSWORD},
    ),
    (f"ou=People,{BASE_DN}", {"objectClass": ["top", "organizationalUnit"], "ou": "People"}),
    (f"ou=Groups,{BASE_DN}", {"objectClass": ["top", "organizationalUnit"], "ou": "Groups"}),
    (
        f"uid=alice,ou=People,{BASE_DN}",
        {
            "objectClass": ["top", "person", "organizationalPerson", "inetOrgPerson"],
            "uid": "alice",
            "cn": "Alice Smith",
            "sn": "Smith",
            "mail": "alice@example.com",
            "jpegPhoto": b"\xff\xd8\xff\xe0\x00\x10JFIF",
            "userPassword": ALICE_PASSWORD,
        },
    ),
    (
        f"uid=bob,ou=People,{BASE_DN}",
        {
            "objectClass": ["top", "person", "organizationalPerson", "inetOrgPerson"],
            "uid": "bob",
            "cn": "Bob Jones",
            "sn": "Jones",
            "mail": "bob@example.com",
        },
    ),
    (
        f"cn=admins,ou=Groups,{BASE_DN}",
        {"objectClass": ["top", "groupOfNames"], "cn": "admins", "member": [f"uid=alice,ou=People,{BASE_DN}"]},
    ),
]

SCHEMA_OBJECT_CLASSES = [
    "( 2.5.6.0 NAME 'top' DESC 'top of the superclass chain' ABSTRACT MUST objectClass )",
    "( 2.5.6.6 NAME 'person' DESC 'RFC2256: a person' SUP top STRUCTURAL MUST ( sn $ cn ) "
    "MAY ( userPassword $ telephoneNumber $ seeAlso $ description ) )",
    "( 2.5.6.7 NAME 'organizationalPerson' SUP person STRUCTURAL MAY ( title $ ou $ l ) )",
    "( 2.16.840.1.113730.3.2.2 NAME 'inetOrgPerson' SUP organizationalPerson STRUCTURAL "
    "MAY ( mail $ uid $ jpegPhoto $ userCertificate ) )",
    "( 2.5.6.5 NAME 'organizationalUnit' SUP top STRUCTURAL MUST ou MAY description )",
    "( 2.5.6.9 NAME ( 'groupOfNames' 'gon' ) SUP top STRUCTURAL MUST ( member $ cn ) MAY owner )",
]
SCHEMA_ATTRIBUTE_TYPES = [
    "( 2.5.4.3 NAME ( 'cn' 'commonName' ) DESC 'common name' SUP name )",
    "( 2.5.4.4 NAME ( 'sn' 'surname' ) SUP name )",
    "( 0.9.2342.19200300.100.1.3 NAME 'mail' EQUALITY caseIgnoreIA5Match )",
]

_RESULTS = {
    0: "success",
    4: "sizeLimitExceeded",
    16: "noSuchAttribute",
    32: "noSuchObject",
    49: "invalidCredentials",
    66: "notAllowedOnNonLeaf",
    68: "entryAlreadyExists",
}

_FILTER = re.compile(r"^\(([A-Za-z][\w-]*)=(.*)\)$")
_ESCAPE = re.compile(r"\\([0-9a-fA-F]{2})")


def _enc(value) -> bytes:
    return value if isinstance(value, bytes) else str(value).encode("utf-8")


def _unescape(value: str) -> str:
    return _ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), value)


class FakeDirectory:
    """In-memory directory tree served by FakeConnection."""

    def __init__(self):
        self.entries: dict[str, tuple[str, CaseInsensitiveDict]] = {}
        self.passwords: dict[str, str] = {}
        self.allow_anonymous = True
        self.root_dse = CaseInsensitiveDict()
        self.schema = CaseInsensitiveDict()
        self.search_calls: list[dict] = []
        self.unbinds = 0
        self.fail_next: str | None = None
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self._gauge = threading.Lock()

    def put(self, dn: str, **attrs) -> None:
        values = CaseInsensitiveDict()
        for name, vals in attrs.items():
            if not isinstance(vals, (list, tuple)):
                vals = [vals]
            values[name] = [_enc(v) for v in vals]
        self.entries[dn.lower()] = (dn, values)

    def get(self, dn: str):
        return self.entries.get(dn.lower())

    def values(self, dn: str, name: str) -> list[str]:
        _, attrs = self.entries[dn.lower()]
        return [v.decode("utf-8") for v in attrs.get(name, [])]


class FakeServer:
    directories: dict[str, FakeDirectory] = {}

    def __init__(self, host, port=None, use_ssl=False, tls=None, get_info=None, connect_timeout=None):
        self.host = host
        self.port = port
        self.use_ssl = use_ssl
        self.tls = tls
        self.connect_timeout = connect_timeout


class FakeConnection:
    def __init__(
        self,
        server,
        user=None,
        password=None,
        authentication=None,
        version=3,
        auto_referrals=True,
        raise_exceptions=False,
    ):
        self.server = server
        self.user = user
        self.password = password
        self.authentication = authentication
        self.directory: FakeDirectory | None = None
        self.bound = False
        self.result: dict = {}
        self.response: list = []

    def _set(self, code: int, message: str = "", controls: dict | None = None) -> bool:
        self.result = {"result": code, "description": _RESULTS.get(code, "other"), "message": message}
        if controls is not None:
            self.result["controls"] = controls
        return code == 0

    def _maybe_fail(self, operation: str) -> None:
        d = self.directory
        if d is not None and d.fail_next == operation:
            d.fail_next = None
            raise LDAPCommunicationError("connection reset by peer")

    def open(self):
        self.directory = FakeServer.directories.get(self.server.host)
        if self.directory is None:
            raise LDAPSocketOpenError(f"socket connection error while opening: {self.server.host}")

    def bind(self):
        d = self.directory
        if self.user is None:
            self.bound = d.allow_anonymous
            return self._set(0 if self.bound else 49)
        self.bound = d.passwords.get(self.user.lower()) == self.password
        return self._set(0 if self.bound else 49)

    def unbind(self):
        if self.directory is not None:
            self.directory.unbinds += 1
        self.bound = False
        return True

    # --- search -------------------------------------------------------------

    def _matches(self, attrs: CaseInsensitiveDict, search_filter: str) -> bool:
        m = _FILTER.match(search_filter)
        if not m or "(" in m.group(2):
            raise NotImplementedError(f"filter not scripted here, use the ldap_server fixture: {search_filter}")
        name, pattern = m.group(1), m.group(2)
        values = [v.decode("utf-8", errors="replace").lower() for v in attrs.get(name, [])]
        if pattern == "*":
            return bool(values)
        if pattern.startswith("*") and pattern.endswith("*"):
            needle = _unescape(pattern[1:-1]).lower()
            return any(needle in v for v in values)
        return _unescape(pattern).lower() in values

    def _select(self, attrs: CaseInsensitiveDict, attributes) -> dict:
        wanted = list(attributes or [])
        if "1.1" in wanted:
            return {}
        if "*" in wanted:
            return {k: list(v) for k, v in attrs.items()}
        out = {}
        for name in wanted:
            if name in attrs:
                out[name] = list(attrs[name])
        return out

    def _scoped(self, base: str, scope: str) -> list[tuple[str, CaseInsensitiveDict]]:
        key = base.lower()
        out = []
        for dn, attrs in self.directory.entries.values():
            low = dn.lower()
            if scope == "LEVEL" and parent_dn(dn).lower() == key:
                out.append((dn, attrs))
            elif scope == "SUBTREE" and (low == key or low.endswith("," + key)):
                out.append((dn, attrs))
        return out

    def search(
        self,
        search_base,
        search_filter,
        search_scope="SUBTREE",
        attributes=None,
        size_limit=0,
        paged_size=None,
        paged_cookie=None,
    ):
        d = self.directory
        with d._gauge:
            d.in_flight += 1
            d.max_in_flight = max(d.max_in_flight, d.in_flight)
        try:
            if d.delay:
                time.sleep(d.delay)
            self._maybe_fail("search")
            d.search_calls.append(
                {"base": search_base, "scope": search_scope, "paged_size": paged_size, "cookie": paged_cookie}
            )
            return self._search(search_base, search_filter, search_scope, attributes, size_limit, paged_size, paged_cookie)
        finally:
            with d._gauge:
                d.in_flight -= 1

    def _search(self, base, search_filter, scope, attributes, size_limit, paged_size, paged_cookie):
        d = self.directory
        self.response = []

        if scope == "BASE":
            if base == "":
                found = ("", d.root_dse)
            elif d.schema and base.lower() == "cn=subschema":
                found = ("cn=Subschema", d.schema)
            else:
                found = d.get(base)
            if found is None:
                return self._set(32)
            dn, attrs = found
            self.response = [{"type": "searchResEntry", "dn": dn, "raw_attributes": self._select(attrs, attributes)}]
            return self._set(0)

        if d.get(base) is None:
            return self._set(32)

        matched = [(dn, attrs) for dn, attrs in self._scoped(base, scope) if self._matches(attrs, search_filter)]

        controls = None
        code = 0
        if paged_size:
            offset = int(paged_cookie) if paged_cookie else 0
            nxt = offset + paged_size
            cookie = str(nxt).encode("ascii") if nxt < len(matched) else b""
            matched = matched[offset:nxt]
            controls = {session_module.PAGED_RESULTS_OID: {"value": {"size": 0, "cookie": cookie}}}
        if size_limit and len(matched) > size_limit:
            matched = matched[:size_limit]
            code = 4

        self.response = [
            {"type": "searchResEntry", "dn": dn, "raw_attributes": self._select(attrs, attributes)}
            for dn, attrs in matched
        ]
        self.response.append({"type": "searchResDone"})
        return self._set(code, controls=controls)

    # --- updates ------------------------------------------------------------

    def add(self, dn, object_class=None, attributes=None):
        self._maybe_fail("add")
        d = self.directory
        if d.get(dn) is not None:
            return self._set(68)
        parent = parent_dn(dn)
        if parent and d.get(parent) is None:
            return self._set(32, "parent does not exist")
        d.put(dn, **dict(attributes or {}))
        return self._set(0)

    def modify(self, dn, changes):
        self._maybe_fail("modify")
        d = self.directory
        found = d.get(dn)
        if found is None:
            return self._set(32)
        _, attrs = found
        for name, ops in changes.items():
            for op, values in ops:
                current = list(attrs.get(name, []))
                encoded = [_enc(v) for v in values]
                if op == "MODIFY_ADD":
                    current.extend(encoded)
                elif op == "MODIFY_REPLACE":
                    current = encoded
                elif op == "MODIFY_DELETE":
                    if not encoded:
                        current = []
                    else:
                        for v in encoded:
                            if v not in current:
                                return self._set(16)
                            current.remove(v)
                if current:
                    attrs[name] = current
                elif name in attrs:
                    del attrs[name]
        return self._set(0)

    def delete(self, dn):
        self._maybe_fail("delete")
        d = self.directory
        if d.get(dn) is None:
            return self._set(32)
        if self._scoped(dn, "LEVEL"):
            return self._set(66)
        del d.entries[dn.lower()]
        return self._set(0)

    def modify_dn(self, dn, relative_dn, delete_old_dn=True, new_superior=None):
        self._maybe_fail("modify_dn")
        d = self.directory
        found = d.get(dn)
        if found is None:
            return self._set(32)
        parent = new_superior if new_superior is not None else parent_dn(dn)
        if new_superior is not None and d.get(new_superior) is None:
            return self._set(32, "new superior does not exist")
        new_dn = f"{relative_dn},{parent}" if parent else relative_dn
        _, attrs = d.entries.pop(dn.lower())
        d.entries[new_dn.lower()] = (new_dn, attrs)
        return self._set(0)


def populate(directory: FakeDirectory) -> None:
    directory.root_dse = CaseInsensitiveDict(
        {
            "namingContexts": [b"o=other", BASE_DN.encode()],
            "defaultNamingContext": [b"DC=Example,DC=Com"],
            "subschemaSubentry": [b"cn=Subschema"],
        }
    )
    directory.schema = CaseInsensitiveDict(
        {
            "objectClasses": [d.encode() for d in SCHEMA_OBJECT_CLASSES],
            "attributeTypes": [d.encode() for d in SCHEMA_ATTRIBUTE_TYPES],
        }
    )
    for dn, attrs in TREE:
        directory.put(dn, **attrs)
        if "userPassword" in attrs:
            directory.passwords[dn.lower()] = attrs["userPassword"]


@pytest.fixture
def directory(monkeypatch):
    """Scripted server: result codes, root DSE, size limits and fault injection."""
    d = FakeDirectory()
    populate(d)
    monkeypatch.setattr(FakeServer, "directories", {HOST: d})
    monkeypatch.setattr(session_module, "Server", FakeServer)
    monkeypatch.setattr(session_module, "Connection", FakeConnection)
    return d


@pytest.fixture
def ldap_server(monkeypatch):
    """The test tree in ldap3's MOCK_SYNC strategy.

    Sessions keep building real ldap3 Server and Connection objects; only the
    client strategy is swapped, and every server shares this one DIT.
    """
    server = ldap3.Server(HOST, get_info=ldap3.NONE)
    loader = ldap3.Connection(server, client_strategy=ldap3.MOCK_SYNC)
    for dn, attrs in TREE:
        loader.strategy.add_entry(dn, dict(attrs))

    def make_server(host, **kwargs):
        real = ldap3.Server(host, **kwargs)
        real.dit = server.dit
        real.dit_lock = server.dit_lock
        return real

    def make_connection(*args, **kwargs):
        return ldap3.Connection(*args, client_strategy=ldap3.MOCK_SYNC, **kwargs)

    monkeypatch.setattr(session_module, "Server", make_server)
    monkeypatch.setattr(session_module, "Connection", make_connection)
    return server


def dit_values(server, dn: str, name: str) -> list:
    """Stored values of one attribute in the MOCK_SYNC DIT, decoded where possible."""
    out = []
    for v in server.dit[dn].get(name, []):
        try:
            out.append(v.decode("utf-8"))
        except UnicodeDecodeError:
            out.append(v)
    return out


@pytest.fixture
def settings():
    return ConnectionSettings(
        name="test",
        server=HOST,
        port=389,
        base_dn=BASE_DN,
        username=ADMIN_DN,
        password=ADMIN_PASSWORD,
    )


@pytest.fixture
def session(directory, settings):
    s = session_module.DirectorySession(page_size=2)
    s.connect(settings)
    yield s
    s.disconnect()
