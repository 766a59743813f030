"""Pytest configuration and payload factories for tests.

No sys.path hacks - tests should import from installed deliverygraph package.
"""

import pytest

from deliverygraph.kernel.session import BuildSession
from deliverygraph.settings import Settings

SPACE_ID = "cfexampleapi"
ENVIRONMENT_ID = "master"


def pytest_addoption(parser):
    """Add gated perf test option."""
    parser.addoption(
        "--run-perf",
        action="store_true",
        default=False,
        help="Run performance sentinel benchmarks (gated)."
    )


def pytest_collection_modifyitems(config, items):
    """Skip perf-marked tests unless --run-perf is set."""
    if config.getoption("--run-perf"):
        return
    skip_perf = pytest.mark.skip(reason="perf tests gated; pass --run-perf")
    for item in items:
        if "perf" in item.keywords:
            item.add_marker(skip_perf)


def link(link_type, link_id):
    return {"sys": {"type": "Link", "linkType": link_type, "id": link_id}}


def make_sys(resource_type, resource_id, revision=1, **extra):
    sys = {
        "id": resource_id,
        "type": resource_type,
        "revision": revision,
        "createdAt": "2018-01-01T10:00:00.000Z",
        "updatedAt": "2018-01-02T10:00:00.000Z",
        "space": link("Space", SPACE_ID),
        "environment": link("Environment", ENVIRONMENT_ID),
    }
    sys.update(extra)
    return sys


@pytest.fixture
def settings():
    return Settings(fetch_timeout=0.5, max_fetch_depth=10, fetch_workers=2)


@pytest.fixture
def session(settings):
    with BuildSession(settings=settings) as session:
        yield session


@pytest.fixture
def content_type_payload():
    """Factory for raw content type documents."""
    def factory(ct_id="cat", fields=None, display_field="name", revision=1, **extra):
        if fields is None:
            fields = [
                {"id": "name", "name": "Name", "type": "Text", "localized": True, "required": True, "validations": []},
                {"id": "lives", "name": "Lives", "type": "Integer", "localized": False, "required": False, "validations": []},
                {"id": "bestFriend", "name": "Best Friend", "type": "Link", "linkType": "Entry",
                 "localized": False, "required": False, "validations": []},
                {"id": "likes", "name": "Likes", "type": "Array", "localized": False, "required": False,
                 "validations": [], "items": {"type": "Symbol", "validations": []}},
                {"id": "image", "name": "Image", "type": "Link", "linkType": "Asset",
                 "localized": False, "required": False, "validations": []},
            ]
        payload = {
            "name": "Cat",
            "description": "Meow.",
            "displayField": display_field,
            "sys": make_sys("ContentType", ct_id, revision),
            "fields": fields,
        }
        payload.update(extra)
        return payload
    return factory


@pytest.fixture
def entry_payload():
    """Factory for raw single-locale entry documents."""
    def factory(entry_id, fields=None, content_type="cat", revision=1, locale="en-US"):
        sys = make_sys("Entry", entry_id, revision, contentType=link("ContentType", content_type))
        if locale is not None:
            sys["locale"] = locale
        return {"sys": sys, "fields": fields or {}}
    return factory


@pytest.fixture
def asset_payload():
    """Factory for raw single-locale asset documents."""
    def factory(asset_id, title="Nyan Cat", revision=1, locale="en-US"):
        sys = make_sys("Asset", asset_id, revision)
        if locale is not None:
            sys["locale"] = locale
        return {
            "sys": sys,
            "fields": {
                "title": title,
                "file": {
                    "fileName": "Nyan_cat_250px_frame.png",
                    "contentType": "image/png",
                    "url": "//images.example.net/nyancat.png",
                    "details": {"size": 12273, "image": {"width": 250, "height": 250}},
                },
            },
        }
    return factory
