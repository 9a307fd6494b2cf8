from ldap_browser.directory.suggestions import COMMON_ATTRIBUTES, suggest_attributes


def test_prefix_matches_come_first():
    out = suggest_attributes("mail")
    assert out[0] == "mail"
    assert "mail" in out


def test_case_insensitive_contains():
    out = suggest_attributes("NUMBER")
    assert "telephoneNumber" in out
    assert "uidNumber" in out
    assert all("number" in a.lower() for a in out)


def test_empty_query_and_limit():
    assert suggest_attributes("") == list(COMMON_ATTRIBUTES)
    assert suggest_attributes("", limit=3) == list(COMMON_ATTRIBUTES[:3])
    assert suggest_attributes("zzz-nothing") == []
