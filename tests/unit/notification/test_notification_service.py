#!/usr/bin/env python3
"""
Test NotificationConfigService end to end against a temp-file store.

The authorizer is a small fake granting per-(user, entity) access so that
filtered listings and rejected targeted operations can be checked.
"""
import pytest

from notification.dispatch import EndpointChannel, NotificationDispatcher
from notification.errors import (
    ConflictError,
    EntityInUseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from notification.matcher import Notification
from notification.service import NotificationConfigService


class FakeAuthorizer:

    def __init__(self, grants):
        # user -> set of entity names ("*" for everything, None for the base path)
        self.grants = grants
        self.calls = []

    def check(self, subject, resource_path, capability_set, allow_missing):
        self.calls.append((subject, resource_path, tuple(capability_set), allow_missing))
        name = resource_path.rsplit("/", 1)[1] if resource_path.count("/") > 2 else None
        allowed = self.grants.get(subject, set())
        if "*" in allowed or name in allowed:
            return True
        if allow_missing:
            return False
        raise PermissionDeniedError(f"{subject} lacks {capability_set} on {resource_path}")


class CountingChannel(EndpointChannel):

    endpoint_type = "sendmail"

    def __init__(self):
        self.sent = []

    def send(self, endpoint, notification):
        self.sent.append(endpoint.name)
        return True


@pytest.fixture
def service(populated_store):
    return NotificationConfigService(populated_store)


@pytest.fixture
def guarded(populated_store):
    authorizer = FakeAuthorizer({
        "root@pam": {"*"},
        "ops@pve": {"push", "errors"},
    })
    return NotificationConfigService(populated_store, authorizer=authorizer)


def test_index_and_types():
    assert [e["name"] for e in NotificationConfigService.index()] == ["endpoints", "matchers", "targets"]
    assert NotificationConfigService.endpoint_types() == [
        {"name": "sendmail"}, {"name": "gotify"}, {"name": "smtp"},
    ]


def test_get_all_targets(service):
    assert service.get_all_targets() == [
        {"name": "mail-to-root", "type": "sendmail"},
        {"name": "push", "type": "gotify", "comment": "phone"},
        {"name": "relay", "type": "smtp"},
    ]


def test_listings_are_filtered(guarded):
    assert [t["name"] for t in guarded.get_all_targets(user="ops@pve")] == ["mail-to-root", "push"]
    assert [m["name"] for m in guarded.list_matchers(user="ops@pve")] == ["errors"]
    assert guarded.list_endpoints("smtp", user="ops@pve") == []
    assert [e["name"] for e in guarded.list_endpoints("gotify", user="root@pam")] == ["push"]


def test_unknown_user_still_sees_builtin_target(guarded):
    assert [t["name"] for t in guarded.get_all_targets(user="nobody@pve")] == ["mail-to-root"]


def test_secrets_are_hidden(service):
    push = service.get_endpoint("gotify", "push")
    assert "token" not in push
    assert push["server"] == "https://gotify.example.com"
    relay = service.list_endpoints("smtp")[0]
    assert "password" not in relay


def test_get_includes_digest(service, populated_store):
    _, digest = populated_store.read()
    assert service.get_endpoint("gotify", "push")["digest"] == digest
    assert service.get_matcher("errors")["digest"] == digest


def test_targeted_operations_check_privileges(guarded, populated_store):
    with open(populated_store.path) as f:
        before = f.read()
    with pytest.raises(PermissionDeniedError):
        guarded.get_endpoint("smtp", "relay", user="ops@pve")
    with pytest.raises(PermissionDeniedError):
        guarded.delete_endpoint("smtp", "relay", user="ops@pve")
    with pytest.raises(PermissionDeniedError):
        guarded.create_matcher({"name": "new-one"}, user="ops@pve")
    with open(populated_store.path) as f:
        assert f.read() == before
    assert guarded.get_endpoint("gotify", "push", user="ops@pve")["name"] == "push"


def test_create_update_delete_endpoint(service):
    service.create_endpoint("sendmail", {"name": "mail1", "mailto": ["a@example.com"], "comment": "x"})
    digest = service.get_endpoint("sendmail", "mail1")["digest"]
    service.update_endpoint("sendmail", "mail1", {"author": "PVE"}, delete=["comment"], digest=digest)
    endpoint = service.get_endpoint("sendmail", "mail1")
    assert endpoint["author"] == "PVE"
    assert "comment" not in endpoint
    service.delete_endpoint("sendmail", "mail1")
    with pytest.raises(NotFoundError):
        service.get_endpoint("sendmail", "mail1")


def test_duplicate_endpoint_across_kinds(service):
    with pytest.raises(ConflictError):
        service.create_endpoint("sendmail", {"name": "push", "mailto": ["a@example.com"]})


def test_stale_digest_leaves_file_unchanged(service, populated_store):
    digest = service.get_matcher("errors")["digest"]
    service.update_matcher("errors", {"comment": "first"}, digest=digest)
    with open(populated_store.path) as f:
        before = f.read()
    with pytest.raises(ConflictError):
        service.update_matcher("errors", {"comment": "second"}, digest=digest)
    with open(populated_store.path) as f:
        assert f.read() == before


def test_delete_endpoint_in_use(service):
    with pytest.raises(EntityInUseError) as exc_info:
        service.delete_endpoint("gotify", "push")
    assert exc_info.value.referrers == ["errors"]
    service.delete_matcher("errors")
    service.delete_endpoint("gotify", "push")


def test_matcher_requires_existing_targets(service):
    with pytest.raises(NotFoundError):
        service.create_matcher({"name": "pager", "target": ["ghost"]})
    with pytest.raises(ValidationError):
        service.create_matcher({"name": "pager", "match-severity": ["fatal"]})
    assert [m["name"] for m in service.list_matchers()] == ["default-matcher", "errors"]


def test_match(service):
    assert service.match(Notification(severity="info")) == ["mail-to-root"]
    assert service.match(Notification(severity="error")) == ["mail-to-root", "push"]


def test_dispatch_and_test_target(populated_store):
    channel = CountingChannel()
    service = NotificationConfigService(
        populated_store, dispatcher=NotificationDispatcher({"sendmail": channel})
    )
    outcome = service.dispatch(Notification(severity="error"))
    assert outcome == {"mail-to-root": True, "push": False}
    service.test_target("mail-to-root")
    assert channel.sent == ["mail-to-root", "mail-to-root"]


def test_builtin_target_testable_without_privileges(populated_store):
    channel = CountingChannel()
    service = NotificationConfigService(
        populated_store,
        authorizer=FakeAuthorizer({}),
        dispatcher=NotificationDispatcher({"sendmail": channel}),
    )
    service.test_target("mail-to-root", user="nobody@pve")
    with pytest.raises(PermissionDeniedError):
        service.test_target("push", user="nobody@pve")


class DenyAll:

    def check(self, subject, resource_path, capability_set, allow_missing):
        return False


def test_authorizer_returning_false_blocks_mutations(populated_store):
    service = NotificationConfigService(populated_store, authorizer=DenyAll())
    with open(populated_store.path) as f:
        before = f.read()
    with pytest.raises(PermissionDeniedError):
        service.create_endpoint("gotify", {"name": "push2", "server": "https://g", "token": "t"}, user="x@pve")
    with pytest.raises(PermissionDeniedError):
        service.update_matcher("errors", {"comment": "x"}, user="x@pve")
    with pytest.raises(PermissionDeniedError):
        service.delete_matcher("errors", user="x@pve")
    with pytest.raises(PermissionDeniedError):
        service.get_endpoint("gotify", "push", user="x@pve")
    with open(populated_store.path) as f:
        assert f.read() == before
    assert [t["name"] for t in service.get_all_targets(user="x@pve")] == ["mail-to-root"]
