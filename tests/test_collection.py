"""Tests for batch builds: per-item failures, ordering and Array envelopes."""

import pytest

from deliverygraph.codes import IssueCode
from deliverygraph.kernel.builder import BuildFailure
from deliverygraph.kernel.errors import MalformedPayload, UnknownResourceType
from deliverygraph.kernel.resources import Entry


def test_partial_failure_keeps_input_order(session, content_type_payload, entry_payload):
    session.builder.build(content_type_payload())
    result = session.builder.build_collection([
        entry_payload("a", {"name": "A"}),
        {"sys": {"id": "broken"}},
        entry_payload("c", {"name": "C"}),
    ])

    assert len(result) == 3
    assert not result.ok
    first, failure, last = result.items
    assert isinstance(first, Entry) and first.id == "a"
    assert isinstance(last, Entry) and last.id == "c"
    assert isinstance(failure, BuildFailure)
    assert failure.index == 1
    assert failure.code == IssueCode.MALFORMED_PAYLOAD
    assert isinstance(failure.error, MalformedPayload)
    assert failure.raw == {"sys": {"id": "broken"}}
    assert [r.id for r in result.resources] == ["a", "c"]
    assert result.failures == [failure]


def test_unknown_type_fails_only_its_item(session, content_type_payload):
    result = session.builder.build_collection([
        {"sys": {"type": "Webhook", "id": "hook"}},
        content_type_payload(),
    ])

    failure, ct = result.items
    assert isinstance(failure.error, UnknownResourceType)
    assert failure.code == IssueCode.UNKNOWN_RESOURCE_TYPE
    assert ct.id == "cat"
    assert [issue.code for issue in result.issues] == [IssueCode.UNKNOWN_RESOURCE_TYPE]


def test_body_failure_is_reported_in_place(session, content_type_payload, entry_payload):
    bad = entry_payload("b")
    bad["fields"] = "nope"
    result = session.builder.build_collection([content_type_payload(), bad, entry_payload("c")])

    assert isinstance(result.items[1], BuildFailure)
    assert result.items[1].index == 1
    assert session.identity_map.find("Entry", "b") == []
    assert [r.id for r in result.resources] == ["cat", "c"]


def test_iterating_a_result(session, content_type_payload):
    result = session.builder.build_collection([content_type_payload(), "garbage"])
    items = list(result)
    assert items[0].id == "cat"
    assert isinstance(items[1], BuildFailure)


def test_empty_collection(session):
    result = session.builder.build_collection([])
    assert result.items == []
    assert result.ok


def test_envelope_returns_only_items(session, content_type_payload, entry_payload):
    envelope = {
        "sys": {"type": "Array"},
        "items": [content_type_payload(), entry_payload("a", {"bestFriend": {
            "sys": {"type": "Link", "linkType": "Entry", "id": "b"}}})],
        "includes": {"Entry": [entry_payload("b", {"name": "B"})]},
    }
    result = session.builder.build_collection(envelope)

    assert [r.id for r in result.resources] == ["cat", "a"]
    assert result.resources[1]["bestFriend"]["name"] == "B"


def test_bad_include_is_an_issue_not_a_failure(session, content_type_payload):
    envelope = {
        "sys": {"type": "Array"},
        "items": [content_type_payload()],
        "includes": {"Entry": [{"sys": {"type": "Entry"}}]},
    }
    result = session.builder.build_collection(envelope)

    assert result.ok
    assert [issue.code for issue in result.issues] == [IssueCode.MALFORMED_PAYLOAD]


@pytest.mark.parametrize("raw", [
    "items",
    42,
    {"items": []},
    {"sys": {"type": "Entry", "id": "x"}},
    {"sys": {"type": "Array"}, "items": "nope"},
])
def test_non_collection_payload_raises(session, raw):
    with pytest.raises(MalformedPayload):
        session.builder.build_collection(raw)
