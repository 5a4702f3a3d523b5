"""
Minimal OData (JSON) data service context on top of httpx.

The context issues queries against a service root, materializes the returned
records into entity models, tracks local changes and submits them on
``save_changes``. It understands both the light (``{"value": [...]}``) and the
verbose (``{"d": {"results": [...]}}``) JSON payload shapes.
"""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from media_services.decorators import RequestDecorator
from media_services.entities import ServiceEntity
from media_services.errors import (
    DataServiceRequestError,
    EntityTrackingError,
    ServiceConnectivityError,
    TransientServiceError,
    UnknownPropertyError,
)
from media_services.http_client import create_data_client
from media_services.retry import RetryPolicy

logger = logging.getLogger(__name__)


class MergeOption(str, Enum):
    """How records read from the service combine with tracked entities."""

    APPEND_ONLY = "AppendOnly"
    OVERWRITE_CHANGES = "OverwriteChanges"
    PRESERVE_CHANGES = "PreserveChanges"
    NO_TRACKING = "NoTracking"


class EntityState(str, Enum):
    DETACHED = "Detached"
    UNCHANGED = "Unchanged"
    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"


@dataclass(frozen=True, slots=True)
class ReadingEntityArgs:
    """Passed to reading-entity callbacks once per materialized entity."""

    entity: ServiceEntity
    entity_set: str
    record: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class ChangeOperationResult:
    entity: ServiceEntity
    entity_set: str
    method: str
    status_code: int


@dataclass(slots=True)
class _EntityDescriptor:
    entity: ServiceEntity
    entity_set: str
    state: EntityState


def _is_annotation(name: str) -> bool:
    return name.startswith("__") or name.startswith("odata.") or "@" in name


def _key_path(entity_set: str, key: str) -> str:
    escaped = key.replace("'", "''")
    return f"{entity_set}('{escaped}')"


def _extract_records(payload: Any) -> list[Mapping[str, Any]]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    if isinstance(payload.get("value"), list):
        return payload["value"]
    if "d" in payload:
        inner = payload["d"]
        if isinstance(inner, list):
            return inner
        if isinstance(inner, dict):
            results = inner.get("results")
            return results if isinstance(results, list) else [inner]
        return []
    return [payload]


class DataServiceContext:
    """Request/response engine bound to a single service root."""

    def __init__(
        self,
        base_uri: str | httpx.URL,
        *,
        ignore_missing_properties: bool = False,
        ignore_resource_not_found: bool = False,
        merge_option: MergeOption = MergeOption.APPEND_ONLY,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_uri = httpx.URL(str(base_uri))
        self.ignore_missing_properties = ignore_missing_properties
        self.ignore_resource_not_found = ignore_resource_not_found
        self.merge_option = merge_option
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self._client = create_data_client(self._base_uri, timeout=timeout, transport=transport)
        self._entity_types: dict[str, type[ServiceEntity]] = {}
        self._reading_entity_callbacks: list[Callable[[ReadingEntityArgs], None]] = []
        self._descriptors: dict[int, _EntityDescriptor] = {}
        self._identity_map: dict[tuple[str, str], ServiceEntity] = {}

    @property
    def base_uri(self) -> httpx.URL:
        return self._base_uri

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DataServiceContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def register_entity_set(self, entity_set: str, entity_type: type[ServiceEntity]) -> None:
        self._entity_types[entity_set] = entity_type

    def add_request_decorator(self, decorator: RequestDecorator) -> None:
        """Run ``decorator`` on every request this context sends, in registration order."""
        hooks = self._client.event_hooks
        hooks["request"].append(decorator.decorate)
        self._client.event_hooks = hooks

    def on_reading_entity(self, callback: Callable[[ReadingEntityArgs], None]) -> None:
        self._reading_entity_callbacks.append(callback)

    # Queries

    def execute(
        self,
        entity_set: str,
        *,
        filter_by: str | None = None,
        order_by: str | None = None,
        top: int | None = None,
        skip: int | None = None,
    ) -> list[ServiceEntity]:
        """Query an entity set and return the materialized entities."""
        options = {"$filter": filter_by, "$orderby": order_by, "$top": top, "$skip": skip}
        params = {name: str(value) for name, value in options.items() if value is not None}
        response = self._send("GET", entity_set, params=params)
        if self._is_ignorable_not_found(response):
            return []
        self._raise_for_status(response)
        return [self._materialize(entity_set, record) for record in self._read_records(response)]

    def get_by_key(self, entity_set: str, key: str) -> ServiceEntity | None:
        response = self._send("GET", _key_path(entity_set, key))
        if self._is_ignorable_not_found(response):
            return None
        self._raise_for_status(response)
        records = self._read_records(response)
        if not records:
            return None
        return self._materialize(entity_set, records[0])

    def refresh(self, entity: ServiceEntity) -> ServiceEntity:
        """Reload a tracked entity, combining server values per ``merge_option``."""
        descriptor = self._require_descriptor(entity)
        if entity.id is None:
            raise EntityTrackingError("Only entities with a key can be refreshed.")
        response = self._send("GET", _key_path(descriptor.entity_set, entity.id))
        if self._is_ignorable_not_found(response):
            return entity
        self._raise_for_status(response)
        for record in self._read_records(response):
            self._materialize(descriptor.entity_set, record)
        return entity

    # Change tracking

    def entity_state(self, entity: ServiceEntity) -> EntityState:
        descriptor = self._descriptors.get(id(entity))
        return descriptor.state if descriptor else EntityState.DETACHED

    def add_object(self, entity_set: str, entity: ServiceEntity) -> None:
        self._ensure_untracked(entity)
        self._entity_types.setdefault(entity_set, type(entity))
        self._descriptors[id(entity)] = _EntityDescriptor(entity, entity_set, EntityState.ADDED)

    def attach_to(self, entity_set: str, entity: ServiceEntity) -> None:
        self._ensure_untracked(entity)
        if entity.id is None:
            raise EntityTrackingError("Only entities with a key can be attached.")
        if (entity_set, entity.id) in self._identity_map:
            raise EntityTrackingError(f"An entity with key {entity.id!r} is already tracked.")
        self._entity_types.setdefault(entity_set, type(entity))
        self._track(entity_set, entity, EntityState.UNCHANGED)

    def update_object(self, entity: ServiceEntity) -> None:
        descriptor = self._require_descriptor(entity)
        if descriptor.state is EntityState.DELETED:
            raise EntityTrackingError("Deleted entities cannot be updated.")
        if descriptor.state is EntityState.UNCHANGED:
            descriptor.state = EntityState.MODIFIED

    def delete_object(self, entity: ServiceEntity) -> None:
        descriptor = self._require_descriptor(entity)
        if descriptor.state is EntityState.ADDED:
            self.detach(entity)
            return
        descriptor.state = EntityState.DELETED

    def detach(self, entity: ServiceEntity) -> bool:
        descriptor = self._descriptors.pop(id(entity), None)
        if descriptor is None:
            return False
        if entity.id is not None:
            self._identity_map.pop((descriptor.entity_set, entity.id), None)
        return True

    def save_changes(self) -> list[ChangeOperationResult]:
        """Submit pending changes one request at a time, in tracking order."""
        results: list[ChangeOperationResult] = []
        for descriptor in list(self._descriptors.values()):
            if descriptor.state is EntityState.ADDED:
                results.append(self._save_added(descriptor))
            elif descriptor.state is EntityState.MODIFIED:
                results.append(self._save_modified(descriptor))
            elif descriptor.state is EntityState.DELETED:
                results.append(self._save_deleted(descriptor))
        return results

    def _save_added(self, descriptor: _EntityDescriptor) -> ChangeOperationResult:
        entity = descriptor.entity
        response = self._send("POST", descriptor.entity_set, json=entity.to_payload())
        self._raise_for_status(response)
        if response.content:
            for record in self._read_records(response)[:1]:
                self._apply_record(entity, record)
        del self._descriptors[id(entity)]
        self._track(descriptor.entity_set, entity, EntityState.UNCHANGED)
        return ChangeOperationResult(entity, descriptor.entity_set, "POST", response.status_code)

    def _save_modified(self, descriptor: _EntityDescriptor) -> ChangeOperationResult:
        entity = descriptor.entity
        path = _key_path(descriptor.entity_set, entity.id or "")
        response = self._send("MERGE", path, json=entity.to_payload())
        self._raise_for_status(response)
        descriptor.state = EntityState.UNCHANGED
        return ChangeOperationResult(entity, descriptor.entity_set, "MERGE", response.status_code)

    def _save_deleted(self, descriptor: _EntityDescriptor) -> ChangeOperationResult:
        entity = descriptor.entity
        path = _key_path(descriptor.entity_set, entity.id or "")
        response = self._send("DELETE", path)
        if self._is_ignorable_not_found(response):
            logger.debug(
                "Entity already gone; treating delete as done",
                extra={"entity_set": descriptor.entity_set, "key": entity.id},
            )
        else:
            self._raise_for_status(response)
        self.detach(entity)
        return ChangeOperationResult(entity, descriptor.entity_set, "DELETE", response.status_code)

    # Materialization

    def _materialize(self, entity_set: str, record: Mapping[str, Any]) -> ServiceEntity:
        entity_type = self._entity_types.get(entity_set)
        if entity_type is None:
            raise EntityTrackingError(f"No entity type is registered for {entity_set!r}.")
        properties = self._properties_for(entity_type, record)
        entity = self._merge(entity_set, entity_type.model_validate(properties))
        args = ReadingEntityArgs(entity=entity, entity_set=entity_set, record=record)
        for callback in self._reading_entity_callbacks:
            callback(args)
        return entity

    def _properties_for(
        self, entity_type: type[ServiceEntity], record: Mapping[str, Any]
    ) -> dict[str, Any]:
        properties = {name: value for name, value in record.items() if not _is_annotation(name)}
        unknown = properties.keys() - entity_type.wire_names()
        if unknown and not self.ignore_missing_properties:
            raise UnknownPropertyError(
                f"{entity_type.__name__} does not declare: {', '.join(sorted(unknown))}."
            )
        return properties

    def _merge(self, entity_set: str, incoming: ServiceEntity) -> ServiceEntity:
        if self.merge_option is MergeOption.NO_TRACKING or incoming.id is None:
            return incoming
        existing = self._identity_map.get((entity_set, incoming.id))
        if existing is None:
            self._track(entity_set, incoming, EntityState.UNCHANGED)
            return incoming

        descriptor = self._descriptors[id(existing)]
        if self.merge_option is MergeOption.OVERWRITE_CHANGES:
            self._copy_fields(incoming, existing)
            if descriptor.state is EntityState.MODIFIED:
                descriptor.state = EntityState.UNCHANGED
        elif (
            self.merge_option is MergeOption.PRESERVE_CHANGES
            and descriptor.state is EntityState.UNCHANGED
        ):
            self._copy_fields(incoming, existing)
        return existing

    def _apply_record(self, entity: ServiceEntity, record: Mapping[str, Any]) -> None:
        properties = self._properties_for(type(entity), record)
        self._copy_fields(type(entity).model_validate(properties), entity)

    @staticmethod
    def _copy_fields(source: ServiceEntity, target: ServiceEntity) -> None:
        for name in source.model_fields_set:
            setattr(target, name, getattr(source, name))

    def _track(self, entity_set: str, entity: ServiceEntity, state: EntityState) -> None:
        self._descriptors[id(entity)] = _EntityDescriptor(entity, entity_set, state)
        if entity.id is not None:
            self._identity_map[(entity_set, entity.id)] = entity

    def _ensure_untracked(self, entity: ServiceEntity) -> None:
        if id(entity) in self._descriptors:
            raise EntityTrackingError("The context is already tracking this entity.")

    def _require_descriptor(self, entity: ServiceEntity) -> _EntityDescriptor:
        descriptor = self._descriptors.get(id(entity))
        if descriptor is None:
            raise EntityTrackingError("The context is not tracking this entity.")
        return descriptor

    # Transport

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        request = self._client.build_request(method, path, **kwargs)
        logger.debug("Sending data service request", extra={"method": method, "path": path})
        try:
            return self._retry_policy.execute(lambda: self._client.send(request))
        except (httpx.TransportError, TransientServiceError) as exc:
            policy = self._retry_policy
            attempts = policy.max_attempts if policy.is_transient(exc) else 1
            logger.error(
                "Data service request failed",
                extra={"method": method, "path": path, "attempts": attempts},
                exc_info=exc,
            )
            raise ServiceConnectivityError(
                f"Data service request failed ({method} {path}): {exc!s}"
            ) from exc

    def _is_ignorable_not_found(self, response: httpx.Response) -> bool:
        return self.ignore_resource_not_found and response.status_code == httpx.codes.NOT_FOUND

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if not response.is_error:
            return
        request = response.request
        snippet = response.text.strip()
        if len(snippet) > 512:
            snippet = f"{snippet[:512]}..."
        logger.warning(
            "Data service responded with error",
            extra={
                "method": request.method,
                "url": str(request.url),
                "status_code": response.status_code,
                "content": snippet,
            },
        )
        raise DataServiceRequestError(
            f"Data service error ({response.status_code}) during {request.method} {request.url}: "
            f"{snippet or 'no body provided.'}",
            status_code=response.status_code,
            method=request.method,
            url=str(request.url),
        )

    @staticmethod
    def _read_records(response: httpx.Response) -> list[Mapping[str, Any]]:
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            request = response.request
            logger.error(
                "Data service returned invalid JSON",
                extra={"method": request.method, "url": str(request.url)},
            )
            raise DataServiceRequestError(
                f"Data service returned invalid JSON during {request.method} {request.url}.",
                status_code=response.status_code,
                method=request.method,
                url=str(request.url),
            ) from exc
        return _extract_records(payload)


class MediaDataServiceContext:
    """The query/create/update/delete surface handed out by the context factory."""

    def __init__(self, context: DataServiceContext) -> None:
        self._context = context

    @property
    def base_uri(self) -> httpx.URL:
        return self._context.base_uri

    def query(self, entity_set: str, **options: Any) -> list[ServiceEntity]:
        return self._context.execute(entity_set, **options)

    def get(self, entity_set: str, key: str) -> ServiceEntity | None:
        return self._context.get_by_key(entity_set, key)

    def add(self, entity_set: str, entity: ServiceEntity) -> None:
        self._context.add_object(entity_set, entity)

    def attach(self, entity_set: str, entity: ServiceEntity) -> None:
        self._context.attach_to(entity_set, entity)

    def update(self, entity: ServiceEntity) -> None:
        self._context.update_object(entity)

    def delete(self, entity: ServiceEntity) -> None:
        self._context.delete_object(entity)

    def refresh(self, entity: ServiceEntity) -> ServiceEntity:
        return self._context.refresh(entity)

    def entity_state(self, entity: ServiceEntity) -> EntityState:
        return self._context.entity_state(entity)

    def save_changes(self) -> list[ChangeOperationResult]:
        return self._context.save_changes()

    def close(self) -> None:
        self._context.close()

    def __enter__(self) -> "MediaDataServiceContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
