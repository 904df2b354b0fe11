import pytest

from livelocal.services.remote.filters import (
    Filter,
    Order,
    any_of,
    eq,
    in_,
    is_null,
    matches_all,
    neq,
    to_query_params,
)


def test_predicates_match_rows():
    row = {"user_id": "u1", "read": False, "read_at": None, "sender_id": "u2"}

    assert eq("user_id", "u1").matches(row)
    assert eq("read", False).matches(row)
    assert neq("sender_id", "u1").matches(row)
    assert is_null("read_at").matches(row)
    assert in_("user_id", ["u0", "u1"]).matches(row)
    assert any_of(eq("user_id", "nobody"), eq("sender_id", "u2")).matches(row)
    assert not matches_all([eq("user_id", "u1"), eq("read", True)], row)


def test_neq_follows_sql_null_semantics():
    assert not neq("sender_id", "u1").matches({"sender_id": None})
    assert not eq("sender_id", None).matches({"sender_id": None})


def test_renders_postgrest_params():
    params = to_query_params(
        [
            eq("user_id", "u1"),
            eq("read", False),
            is_null("read_at"),
            in_("experience_id", ["a", "b"]),
            any_of(eq("guest_id", "u1"), eq("host_id", "u1")),
        ]
    )

    assert params == [
        ("user_id", "eq.u1"),
        ("read", "eq.false"),
        ("read_at", "is.null"),
        ("experience_id", "in.(a,b)"),
        ("or", "(guest_id.eq.u1,host_id.eq.u1)"),
    ]
    assert Order("created_at", ascending=False).to_param() == ("order", "created_at.desc")


def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        Filter("user_id", "like", "u%")
