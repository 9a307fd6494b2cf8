"""Browser-style LDAP directory client: session engine plus a JSON API."""

__version__ = "0.1.0"
