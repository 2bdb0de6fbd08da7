from config import parse_tokens


def test_parse_tokens_service_and_bound():
    tokens = parse_tokens("svc-token, tenant-token@acme ,, other@globex")

    assert tokens == {"svc-token": None, "tenant-token": "acme", "other": "globex"}


def test_parse_tokens_empty():
    assert parse_tokens(None) == {}
    assert parse_tokens("") == {}
