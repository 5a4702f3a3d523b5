import json

import httpx
import pytest

from media_services.context import DataServiceContext, EntityState, MergeOption
from media_services.entities import Asset
from media_services.errors import (
    DataServiceRequestError,
    EntityTrackingError,
    ServiceConnectivityError,
    UnknownPropertyError,
)

ACCOUNT_ENDPOINT = "https://account1.media.example.net/api/"


def _build_context(handler, **options) -> DataServiceContext:
    context = DataServiceContext(
        ACCOUNT_ENDPOINT,
        transport=httpx.MockTransport(handler),
        **options,
    )
    context.register_entity_set("Assets", Asset)
    return context


def test_query_sends_odata_options() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"value": []})

    with _build_context(handler) as context:
        assert context.execute("Assets", filter_by="Name eq 'clip'", top=5, skip=10) == []

    params = captured[0].url.params
    assert captured[0].url.path == "/api/Assets"
    assert params["$filter"] == "Name eq 'clip'"
    assert params["$top"] == "5"
    assert params["$skip"] == "10"
    assert "$orderby" not in params


def test_verbose_payload_is_materialized() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "d": {
                    "results": [
                        {"__metadata": {"uri": "Assets('nb:cid:1')"}, "Id": "nb:cid:1", "Name": "clip"}
                    ]
                }
            },
        )

    with _build_context(handler) as context:
        (asset,) = context.execute("Assets")

    assert isinstance(asset, Asset)
    assert asset.id == "nb:cid:1"
    assert asset.name == "clip"


def test_unknown_property_rejected_unless_ignored() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [{"Id": "nb:cid:1", "Extra": 1}]})

    with _build_context(handler) as context:
        with pytest.raises(UnknownPropertyError):
            context.execute("Assets")

    with _build_context(handler, ignore_missing_properties=True) as context:
        (asset,) = context.execute("Assets")
    assert asset.id == "nb:cid:1"


def test_not_found_raises_unless_ignored() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="Resource not found")

    with _build_context(handler) as context:
        with pytest.raises(DataServiceRequestError) as exc:
            context.get_by_key("Assets", "nb:cid:1")
    assert exc.value.status_code == 404
    assert "Resource not found" in str(exc.value)

    with _build_context(handler, ignore_resource_not_found=True) as context:
        assert context.get_by_key("Assets", "nb:cid:1") is None
        assert context.execute("Assets") == []


def test_delete_not_found_raises_unless_ignored() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with _build_context(handler) as context:
        asset = Asset(Id="nb:cid:1")
        context.attach_to("Assets", asset)
        context.delete_object(asset)
        with pytest.raises(DataServiceRequestError):
            context.save_changes()


def test_key_lookup_escapes_quotes() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"Id": "it's", "Name": "quoted"})

    with _build_context(handler) as context:
        asset = context.get_by_key("Assets", "it's")

    assert captured[0].url.path == "/api/Assets('it''s')"
    assert asset.name == "quoted"


def test_save_changes_submits_each_pending_change() -> None:
    captured: list[tuple[str, str, dict | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        captured.append((request.method, request.url.path, body))
        if request.method == "POST":
            return httpx.Response(201, json={**body, "Id": "nb:cid:new", "State": 0})
        return httpx.Response(204)

    with _build_context(handler) as context:
        created = Asset(Name="new")
        modified = Asset(Id="nb:cid:2", Name="before")
        deleted = Asset(Id="nb:cid:3")
        context.add_object("Assets", created)
        context.attach_to("Assets", modified)
        context.attach_to("Assets", deleted)
        modified.name = "after"
        context.update_object(modified)
        context.delete_object(deleted)

        results = context.save_changes()

        assert [result.method for result in results] == ["POST", "MERGE", "DELETE"]
        assert created.id == "nb:cid:new"
        assert created.state == 0
        assert context.entity_state(created) is EntityState.UNCHANGED
        assert context.entity_state(modified) is EntityState.UNCHANGED
        assert context.entity_state(deleted) is EntityState.DETACHED
        assert context.save_changes() == []

    assert captured[0] == ("POST", "/api/Assets", {"Name": "new"})
    assert captured[1] == ("MERGE", "/api/Assets('nb:cid:2')", {"Id": "nb:cid:2", "Name": "after"})
    assert captured[2] == ("DELETE", "/api/Assets('nb:cid:3')", None)


def test_deleting_added_entity_just_detaches_it() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with _build_context(handler) as context:
        asset = Asset(Name="draft")
        context.add_object("Assets", asset)
        context.delete_object(asset)
        assert context.entity_state(asset) is EntityState.DETACHED
        assert context.save_changes() == []


def test_tracking_errors() -> None:
    with _build_context(lambda request: httpx.Response(204)) as context:
        asset = Asset(Id="nb:cid:1")
        with pytest.raises(EntityTrackingError):
            context.update_object(asset)
        with pytest.raises(EntityTrackingError):
            context.attach_to("Assets", Asset(Name="no key"))
        context.attach_to("Assets", asset)
        with pytest.raises(EntityTrackingError):
            context.attach_to("Assets", Asset(Id="nb:cid:1"))


@pytest.mark.parametrize(
    ("merge_option", "expected_name", "expected_state"),
    [
        (MergeOption.APPEND_ONLY, "local", EntityState.MODIFIED),
        (MergeOption.OVERWRITE_CHANGES, "server", EntityState.UNCHANGED),
        (MergeOption.PRESERVE_CHANGES, "local", EntityState.MODIFIED),
    ],
)
def test_merge_options_on_requery(merge_option, expected_name, expected_state) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [{"Id": "nb:cid:1", "Name": "server"}]})

    with _build_context(handler, merge_option=merge_option) as context:
        (asset,) = context.execute("Assets")
        asset.name = "local"
        context.update_object(asset)

        (again,) = context.execute("Assets")

        assert again is asset
        assert asset.name == expected_name
        assert context.entity_state(asset) is expected_state


def test_no_tracking_returns_fresh_instances() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [{"Id": "nb:cid:1", "Name": "server"}]})

    with _build_context(handler, merge_option=MergeOption.NO_TRACKING) as context:
        (first,) = context.execute("Assets")
        (second,) = context.execute("Assets")

        assert first is not second
        assert context.entity_state(first) is EntityState.DETACHED


def test_reading_entity_callbacks_fire_per_entity() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"value": [{"Id": "a"}, {"Id": "b"}]})

    seen: list[tuple[str, str]] = []
    with _build_context(handler) as context:
        context.on_reading_entity(lambda args: seen.append((args.entity_set, args.entity.id)))
        context.execute("Assets")

    assert seen == [("Assets", "a"), ("Assets", "b")]


def test_invalid_json_is_reported() -> None:
    with _build_context(lambda request: httpx.Response(200, text="<html/>")) as context:
        with pytest.raises(DataServiceRequestError) as exc:
            context.execute("Assets")
    assert "invalid JSON" in str(exc.value)


def test_transient_failures_retried_then_surface_connectivity_error(retry_policy, sleeps) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    with _build_context(handler, retry_policy=retry_policy) as context:
        with pytest.raises(ServiceConnectivityError):
            context.execute("Assets")

    assert calls == retry_policy.max_attempts
    assert len(sleeps) == retry_policy.max_attempts - 1
