import pytest

from nostrelay.filters import (
    Event,
    FilterError,
    ReqFilter,
    TagOperand,
    prefix_match,
)


def make_event(**kwargs):
    base = {"id": "", "pubkey": ""}
    base.update(kwargs)
    return Event(**base)


def test_empty_filter_parse():
    f = ReqFilter.from_json({})
    assert f.authors is None
    assert f.tags is None
    assert f.force_no_match is False


def test_non_object_rejected():
    with pytest.raises(FilterError):
        ReqFilter.from_json("{}")


def test_empty_authors_prefix():
    with pytest.raises(FilterError):
        ReqFilter.from_json({"authors": [""]})


def test_empty_ids_prefix():
    with pytest.raises(FilterError):
        ReqFilter.from_json({"ids": [""]})


def test_empty_ids_prefix_mixed():
    with pytest.raises(FilterError):
        ReqFilter.from_json({"ids": ["", "aaa"]})


def test_legacy_field_ignored():
    f = ReqFilter.from_json({"kind": 3})
    assert f == ReqFilter()


def test_author_filter():
    f = ReqFilter.from_json({"authors": ["test-author-id"]})
    assert f.authors == ["test-author-id"]


def test_bad_types_become_absent():
    f = ReqFilter.from_json({"kinds": ["a"], "since": -1, "limit": 1.5, "until": True})
    assert (f.kinds, f.since, f.limit, f.until) == (None, None, None, None)


def test_tag_parsing():
    f = ReqFilter.from_json({"#e": ["foo", "bar"], "#t&": ["a"], "#long": ["x"]})
    assert f.tags == {
        "e": TagOperand(frozenset({"foo", "bar"})),
        "t": TagOperand(frozenset({"a"}), all_required=True),
    }


def test_tag_key_with_non_string_values_gives_empty_map():
    f = ReqFilter.from_json({"#e": [1, 2]})
    assert f.tags == {}


def test_interest_author_prefix_match():
    f = ReqFilter.from_json({"authors": ["abc"]})
    assert f.interested_in_event(make_event(id="foo", pubkey="abcd"))


def test_interest_id_prefix_match():
    f = ReqFilter.from_json({"ids": ["abc"]})
    assert f.interested_in_event(make_event(id="abcd"))


def test_interest_id_nomatch():
    f = ReqFilter.from_json({"ids": ["xyz"]})
    assert not f.interested_in_event(make_event(id="abcde"))


def test_interest_until():
    f = ReqFilter.from_json({"ids": ["abc"], "until": 1000})
    assert f.interested_in_event(make_event(id="abc", created_at=50))


def test_interest_range():
    e = make_event(id="abc", created_at=150)
    assert ReqFilter.from_json({"ids": ["abc"], "since": 100, "until": 200}).interested_in_event(e)
    assert not ReqFilter.from_json({"ids": ["abc"], "since": 100, "until": 140}).interested_in_event(e)
    assert not ReqFilter.from_json({"ids": ["abc"], "since": 160, "until": 200}).interested_in_event(e)


def test_interest_time_and_id():
    f = ReqFilter.from_json({"ids": ["abc"], "since": 1000})
    assert not f.interested_in_event(make_event(id="abc", created_at=50))


def test_interest_time_and_legacy_id():
    f = ReqFilter.from_json({"id": "abc", "since": 1000})
    assert f.interested_in_event(make_event(id="abc", created_at=1001))


def test_authors_multi():
    f = ReqFilter.from_json({"authors": ["abc", "bcd"]})
    assert f.interested_in_event(make_event(id="123", pubkey="bcd"))
    assert not f.interested_in_event(make_event(id="123", pubkey="xyz"))


def test_delegated_author_match():
    f = ReqFilter.from_json({"authors": ["del"]})
    assert f.interested_in_event(make_event(id="1", pubkey="abc", delegated_by="delegator"))


def test_kind_match():
    f = ReqFilter.from_json({"kinds": [1, 4]})
    assert f.interested_in_event(make_event(kind=4))
    assert not f.interested_in_event(make_event(kind=2))


def test_or_tag_match():
    f = ReqFilter.from_json({"#e": ["foo", "bar"]})
    assert f.interested_in_event(make_event(tags=[["e", "bar"]]))
    assert not f.interested_in_event(make_event(tags=[["e", "baz"]]))


def test_and_tag_match():
    f = ReqFilter.from_json({"#t&": ["a", "b"]})
    assert f.interested_in_event(make_event(tags=[["t", "a"], ["t", "b"]]))
    assert not f.interested_in_event(make_event(tags=[["t", "a"]]))


def test_force_no_match():
    f = ReqFilter(force_no_match=True)
    assert not f.interested_in_event(make_event(id="abc"))


def test_serialize_round_trip():
    f = ReqFilter.from_json(
        {"authors": ["abc", "bcd"], "since": 10, "until": 20, "limit": 100,
         "#e": ["foo", "bar"], "#d": ["test"]}
    )
    parsed = ReqFilter.from_json(f.to_json())
    assert parsed.since == 10
    assert parsed.until == 20
    assert parsed.limit == 100
    assert parsed == f


def test_serialize_key_order():
    f = ReqFilter.from_json({"since": 1, "until": 2, "ids": ["a"], "limit": 3})
    assert list(f.to_json()) == ["ids", "until", "since", "limit"]


def test_event_tag_values():
    e = make_event(tags=[["p", "x"], ["p"], ["e", "y"], ["p", "z", "extra"]])
    assert e.tag_values("p") == ["x", "z"]


def test_tag_operand_matches():
    assert TagOperand(frozenset({"a", "b"})).matches(["b"])
    assert not TagOperand(frozenset({"a", "b"}), all_required=True).matches(["b"])
    assert TagOperand(frozenset({"a"}), all_required=True).matches(["a", "c"])


def test_prefix_match():
    assert prefix_match(["ab", "cd"], "cdef")
    assert not prefix_match(["ab"], "ba")
    assert not prefix_match([], "anything")