"""One live connection to one directory server.

Every request against the connection runs under the session lock, so at most
one request is in flight per session. Sessions are independent of each other.
"""

from __future__ import annotations

import logging
import ssl
import threading
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional, Sequence

from ldap3 import (
    ALL_ATTRIBUTES,
    ANONYMOUS,
    BASE,
    LEVEL,
    MODIFY_ADD,
    MODIFY_DELETE,
    MODIFY_REPLACE,
    NO_ATTRIBUTES,
    NONE,
    SIMPLE,
    SUBTREE,
    Connection,
    Server,
    Tls,
)
from ldap3.core.exceptions import LDAPException
from ldap3.utils.ciDict import CaseInsensitiveDict

from .errors import ConnectFailed, NotConnected, OperationFailed
from .models import ConnectionSettings, DirectoryEntry, LdapModification, ModificationType
from .passwords import DEFAULT_ALGORITHM, PASSWORD_ATTRIBUTE, hash_password
from .schema import Schema, parse_schema_name
from .utils import decode_value, first_ou_component, parent_dn

log = logging.getLogger(__name__)

PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"
DEFAULT_PAGE_SIZE = 1000
ANY_OBJECT = "(objectClass=*)"
DEFAULT_SCHEMA_DN = "cn=Subschema"

RESULT_SUCCESS = 0
RESULT_SIZE_LIMIT_EXCEEDED = 4

_MOD_OPS = {
    ModificationType.ADD: MODIFY_ADD,
    ModificationType.REPLACE: MODIFY_REPLACE,
    ModificationType.DELETE: MODIFY_DELETE,
}


def _safe_unbind(conn: Connection | None) -> None:
    if conn is None:
        return
    try:
        conn.unbind()
    except LDAPException as e:
        log.debug("unbind failed: %s", e)


def _paged_cookie(result: Mapping | None) -> bytes | None:
    controls = (result or {}).get("controls") or {}
    ctrl = controls.get(PAGED_RESULTS_OID) or {}
    return (ctrl.get("value") or {}).get("cookie") or None


def _entries(conn: Connection) -> list[dict]:
    return [r for r in (conn.response or []) if r.get("type") == "searchResEntry"]


def _to_entry(item: Mapping) -> DirectoryEntry:
    attrs = CaseInsensitiveDict()
    for name, values in (item.get("raw_attributes") or {}).items():
        attrs[name] = [decode_value(v) for v in (values or [])]
    return DirectoryEntry(dn=str(item.get("dn") or ""), attributes=attrs)


def _raw_values(item: Mapping, name: str) -> list[bytes]:
    raw = item.get("raw_attributes") or {}
    values = raw.get(name)
    if values is None:
        # plain dicts (e.g. from custom strategies) are not case-insensitive
        for key, vals in raw.items():
            if key.lower() == name.lower():
                values = vals
                break
    return list(values or [])


def _text_values(item: Mapping, name: str) -> list[str]:
    return [v.decode("utf-8", errors="replace") if isinstance(v, bytes) else str(v) for v in _raw_values(item, name)]


def build_changes(modifications: Sequence[LdapModification]) -> dict[str, list[tuple[str, list[str]]]]:
    """Translate modifications into an ldap3 changes dict.

    Order is kept per attribute. A modification is merged into the one right
    before it in the list when both have the same attribute, type and a value,
    so a replace with several values replaces with all of them. Anything in
    between starts a new change.
    """
    changes: dict[str, list[tuple[str, list[str]]]] = {}
    names: dict[str, str] = {}
    previous: tuple[str, str] | None = None

    for mod in modifications:
        attr = (mod.attribute_name or "").strip()
        if not attr:
            continue
        name = names.setdefault(attr.lower(), attr)
        op = _MOD_OPS.get(mod.type, MODIFY_REPLACE)
        if mod.type == ModificationType.DELETE:
            value = mod.old_value
        else:
            value = mod.new_value

        ops = changes.setdefault(name, [])
        if value is not None and previous == (name, op) and ops[-1][1]:
            ops[-1][1].append(value)
        else:
            ops.append((op, [value] if value is not None else []))
        previous = (name, op)

    return changes


class DirectorySession:
    def __init__(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        connect_timeout: float | None = None,
        tls_validate: bool = True,
    ) -> None:
        self._connection: Optional[Connection] = None
        self._settings: Optional[ConnectionSettings] = None
        self._lock = threading.Lock()
        self.page_size = max(1, int(page_size))
        self.connect_timeout = connect_timeout
        self.tls_validate = tls_validate

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def settings(self) -> Optional[ConnectionSettings]:
        return self._settings

    # --- connection lifecycle -------------------------------------------

    def _server(self, settings: ConnectionSettings) -> Server:
        tls = None
        if settings.use_ssl:
            tls = Tls(validate=ssl.CERT_REQUIRED if self.tls_validate else ssl.CERT_NONE)
        return Server(
            host=settings.server,
            port=settings.port,
            use_ssl=settings.use_ssl,
            tls=tls,
            get_info=NONE,
            connect_timeout=self.connect_timeout,
        )

    def _open(self, settings: ConnectionSettings, user: str | None, password: str | None) -> Connection:
        """Open and bind a new connection; ConnectFailed on any failure."""
        target = f"{settings.server}:{settings.port}"
        conn: Connection | None = None
        try:
            conn = Connection(
                self._server(settings),
                user=user or None,
                password=password if user else None,
                authentication=SIMPLE if user else ANONYMOUS,
                version=3,
                auto_referrals=False,
                raise_exceptions=False,
            )
            conn.open()
            ok = bool(conn.bind())
        except LDAPException as e:
            _safe_unbind(conn)
            raise ConnectFailed(f"Cannot connect to {target}: {e}") from e

        if not ok:
            res = dict(conn.result or {})
            _safe_unbind(conn)
            msg = f"Bind to {target} failed: {res.get('description') or 'unknown error'}"
            if res.get("message"):
                msg += f" ({res['message']})"
            raise ConnectFailed(msg)
        return conn

    def connect(self, settings: ConnectionSettings) -> None:
        user = settings.username.strip() if settings.has_credentials else None
        with self._lock:
            self._close_locked()
            self._connection = self._open(settings, user, settings.password)
            self._settings = settings
        log.info("connected to %s:%s as %s", settings.server, settings.port, user or "anonymous")

    def _close_locked(self) -> None:
        conn = self._connection
        self._connection = None
        self._settings = None
        _safe_unbind(conn)

    def disconnect(self) -> None:
        with self._lock:
            was_connected = self._connection is not None
            settings = self._settings
            self._close_locked()
        if was_connected and settings is not None:
            log.info("disconnected from %s:%s", settings.server, settings.port)

    close = disconnect

    def test_bind(self, user_dn: str, password: str) -> bool:
        """Check credentials on a separate short-lived connection.

        Uses this session's server/port/SSL settings; the main connection and
        its lock are not touched.
        """
        settings = self._settings
        if settings is None:
            raise NotConnected()
        if not (user_dn or "").strip():
            raise ConnectFailed("A user DN is required for a test bind.")
        # An empty password would be an unauthenticated bind, which servers accept.
        if not password:
            raise ConnectFailed("A password is required for a test bind.")

        conn = self._open(settings, user_dn.strip(), password)
        _safe_unbind(conn)
        log.info("test bind succeeded for %s", user_dn)
        return True

    # --- request helpers --------------------------------------------------

    @contextmanager
    def _locked(self, operation: str) -> Iterator[Connection]:
        with self._lock:
            if self._connection is None:
                raise NotConnected()
            try:
                yield self._connection
            except LDAPException as e:
                raise OperationFailed(operation, {"description": str(e)}) from e

    @staticmethod
    def _check(conn: Connection, operation: str, allowed: tuple[int, ...] = (RESULT_SUCCESS,)) -> None:
        res = conn.result or {}
        if res.get("result") not in allowed:
            raise OperationFailed(operation, res)

    def _paged_search(
        self,
        conn: Connection,
        base: str,
        search_filter: str,
        scope: str,
        attributes: Sequence[str],
    ) -> list[dict]:
        items: list[dict] = []
        cookie: bytes | None = None
        pages = 0
        while True:
            conn.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=scope,
                attributes=list(attributes),
                paged_size=self.page_size,
                paged_cookie=cookie,
            )
            self._check(conn, "search")
            pages += 1
            items.extend(_entries(conn))
            cookie = _paged_cookie(conn.result)
            if not cookie:
                break
        log.debug(
            "search base=%r scope=%s filter=%s: %d entries in %d page(s)",
            base, scope, search_filter, len(items), pages,
        )
        return items

    def _read_base(self, conn: Connection, dn: str, attributes: Sequence[str], operation: str) -> dict | None:
        conn.search(search_base=dn, search_filter=ANY_OBJECT, search_scope=BASE, attributes=list(attributes))
        res = conn.result or {}
        if res.get("result") == 32:
            return None
        self._check(conn, operation)
        items = _entries(conn)
        return items[0] if items else None

    # --- tree / search ----------------------------------------------------

    def get_children(self, parent_dn: str) -> list[DirectoryEntry]:
        with self._locked("get children") as conn:
            items = self._paged_search(conn, parent_dn, ANY_OBJECT, LEVEL, [NO_ATTRIBUTES])
        entries = [_to_entry(i) for i in items]
        entries.sort(key=lambda e: e.display_name)
        return entries

    def get_child_count(self, parent_dn: str) -> int:
        with self._locked("count children") as conn:
            return len(self._paged_search(conn, parent_dn, ANY_OBJECT, LEVEL, [NO_ATTRIBUTES]))

    def has_children(self, parent_dn: str) -> bool:
        with self._locked("check children") as conn:
            conn.search(
                search_base=parent_dn,
                search_filter=ANY_OBJECT,
                search_scope=LEVEL,
                attributes=[NO_ATTRIBUTES],
                size_limit=1,
            )
            self._check(conn, "check children", allowed=(RESULT_SUCCESS, RESULT_SIZE_LIMIT_EXCEEDED))
            return bool(_entries(conn))

    def get_entry(self, dn: str) -> DirectoryEntry | None:
        with self._locked("read entry") as conn:
            item = self._read_base(conn, dn, [ALL_ATTRIBUTES], "read entry")
        return _to_entry(item) if item is not None else None

    def search(self, base_dn: str, search_filter: str) -> list[DirectoryEntry]:
        with self._locked("search") as conn:
            items = self._paged_search(conn, base_dn, search_filter, SUBTREE, [ALL_ATTRIBUTES])
        entries = [_to_entry(i) for i in items]
        entries.sort(key=lambda e: e.dn)
        return entries

    def get_subtree(self, base_dn: str) -> list[DirectoryEntry]:
        return self.search(base_dn, ANY_OBJECT)

    def get_naming_contexts(self) -> list[str]:
        with self._locked("read root DSE") as conn:
            root = self._read_base(conn, "", ["namingContexts", "defaultNamingContext"], "read root DSE")
        if root is None:
            return []

        contexts = _text_values(root, "namingContexts")
        default = next(iter(_text_values(root, "defaultNamingContext")), "")
        if default:
            for i, ctx in enumerate(contexts):
                if ctx.lower() == default.lower():
                    contexts.insert(0, contexts.pop(i))
                    break
        return contexts

    # --- schema -------------------------------------------------------------

    def get_schema(self) -> Schema:
        with self._locked("read schema") as conn:
            schema_dn = DEFAULT_SCHEMA_DN
            root = self._read_base(conn, "", ["subschemaSubentry"], "read root DSE")
            if root is not None:
                found = _text_values(root, "subschemaSubentry")
                if found and found[0]:
                    schema_dn = found[0]
            item = self._read_base(conn, schema_dn, ["objectClasses", "attributeTypes"], "read schema")

        schema = Schema()
        if item is not None:
            schema.object_classes = [parse_schema_name(d) for d in _text_values(item, "objectClasses")]
            schema.attribute_types = [parse_schema_name(d) for d in _text_values(item, "attributeTypes")]
        schema.sort()
        log.debug(
            "schema %s: %d object classes, %d attribute types",
            schema_dn, len(schema.object_classes), len(schema.attribute_types),
        )
        return schema

    # --- statistics -------------------------------------------------------

    def get_statistics(self, base_dn: str) -> dict[str, int]:
        """Number of entries per objectClass value below base_dn."""
        with self._locked("statistics") as conn:
            items = self._paged_search(conn, base_dn, ANY_OBJECT, SUBTREE, ["objectClass"])
        stats: dict[str, int] = {}
        for item in items:
            for oc in _text_values(item, "objectClass"):
                stats[oc] = stats.get(oc, 0) + 1
        return stats

    def get_ou_statistics(self, base_dn: str) -> dict[str, int]:
        """Number of entries per nearest "ou=" RDN found in their DN."""
        with self._locked("OU statistics") as conn:
            items = self._paged_search(conn, base_dn, ANY_OBJECT, SUBTREE, [NO_ATTRIBUTES])
        stats: dict[str, int] = {}
        for item in items:
            ou = first_ou_component(str(item.get("dn") or ""))
            if ou:
                stats[ou] = stats.get(ou, 0) + 1
        return stats

    # --- mutations ----------------------------------------------------------

    def modify_entry(self, dn: str, modifications: Sequence[LdapModification]) -> None:
        changes = build_changes(modifications)
        if not changes:
            log.debug("modify %s: no changes", dn)
            return
        with self._locked("modify") as conn:
            conn.modify(dn, changes)
            self._check(conn, "modify")
        log.info("modified %s (%s)", dn, ", ".join(changes))

    def create_entry(self, dn: str, attributes: Mapping[str, Sequence[str]]) -> None:
        attrs = {k: list(v) for k, v in attributes.items() if v}
        with self._locked("add") as conn:
            conn.add(dn, attributes=attrs)
            self._check(conn, "add")
        log.info("created %s", dn)

    def delete_entry(self, dn: str) -> None:
        with self._locked("delete") as conn:
            conn.delete(dn)
            self._check(conn, "delete")
        log.info("deleted %s", dn)

    def move_entry(self, dn: str, new_rdn: str, new_parent_dn: str | None = None) -> str:
        """Rename and/or move an entry; returns its new DN."""
        new_rdn = (new_rdn or "").strip()
        new_parent = (new_parent_dn or "").strip() or None
        with self._locked("move") as conn:
            conn.modify_dn(dn, new_rdn, delete_old_dn=True, new_superior=new_parent)
            self._check(conn, "move")
        parent = new_parent if new_parent is not None else parent_dn(dn)
        new_dn = f"{new_rdn},{parent}" if parent else new_rdn
        log.info("moved %s -> %s", dn, new_dn)
        return new_dn

    def set_password(self, dn: str, password: str, hash_algorithm: str = DEFAULT_ALGORITHM) -> None:
        value = hash_password(password, hash_algorithm)
        with self._locked("set password") as conn:
            conn.modify(dn, {PASSWORD_ATTRIBUTE: [(MODIFY_REPLACE, [value])]})
            self._check(conn, "set password")
        log.info("password set for %s (%s)", dn, hash_algorithm)

    def get_binary_attribute(self, dn: str, attribute_name: str) -> bytes | None:
        """First raw value of one attribute, bypassing the text model."""
        with self._locked("read binary attribute") as conn:
            item = self._read_base(conn, dn, [attribute_name], "read binary attribute")
        if item is None:
            return None
        values = _raw_values(item, attribute_name)
        if not values:
            return None
        first = values[0]
        return first if isinstance(first, bytes) else str(first).encode("utf-8")
