"""Entity models materialized from Media Services payloads.

Entities are pydantic models whose field aliases match the wire names. Types
that need to call back into the service implement ``initialize_with_owner``;
the context factory invokes it for every entity it materializes, handing over
the shared owner. The owner is held through a weak reference in a private
attribute, so it never takes part in serialization.
"""

import weakref
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from media_services.errors import MediaServicesError

if TYPE_CHECKING:
    from media_services.client import MediaServicesClient


@runtime_checkable
class OwnerContextInit(Protocol):
    """Capability of entities that accept a back-reference to their owner."""

    def initialize_with_owner(self, owner: Any) -> None:
        ...


class ServiceEntity(BaseModel):
    """Base for every entity type; ``Id`` is the entity key."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    entity_set: ClassVar[str] = ""

    id: str | None = Field(default=None, alias="Id")

    @classmethod
    def wire_names(cls) -> frozenset[str]:
        """Names the type accepts in a payload."""
        return frozenset(field.alias or name for name, field in cls.model_fields.items())

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class OwnerContextAware(ServiceEntity):
    """Entity that keeps a weak back-reference to its owning client."""

    _owner_ref: Any = PrivateAttr(default=None)

    def initialize_with_owner(self, owner: Any) -> None:
        self._owner_ref = weakref.ref(owner)

    @property
    def owner(self) -> "MediaServicesClient":
        owner = self._owner_ref() if self._owner_ref is not None else None
        if owner is None:
            raise MediaServicesError(
                f"{type(self).__name__} is not attached to a live Media Services client."
            )
        return owner


class Asset(OwnerContextAware):
    entity_set: ClassVar[str] = "Assets"

    name: str | None = Field(default=None, alias="Name")
    state: int | None = Field(default=None, alias="State")
    options: int | None = Field(default=None, alias="Options")
    alternate_id: str | None = Field(default=None, alias="AlternateId")
    uri: str | None = Field(default=None, alias="Uri")
    storage_account_name: str | None = Field(default=None, alias="StorageAccountName")
    created: datetime | None = Field(default=None, alias="Created")
    last_modified: datetime | None = Field(default=None, alias="LastModified")

    def delete(self) -> None:
        """Delete this asset through a fresh context from the owning client."""
        with self.owner.create_context() as context:
            context.attach(self.entity_set, self)
            context.delete(self)
            context.save_changes()


class Job(OwnerContextAware):
    entity_set: ClassVar[str] = "Jobs"

    name: str | None = Field(default=None, alias="Name")
    state: int | None = Field(default=None, alias="State")
    priority: int | None = Field(default=None, alias="Priority")
    running_duration: float | None = Field(default=None, alias="RunningDuration")
    created: datetime | None = Field(default=None, alias="Created")
    start_time: datetime | None = Field(default=None, alias="StartTime")
    end_time: datetime | None = Field(default=None, alias="EndTime")

    def refresh(self) -> None:
        """Reload this job's server-side state."""
        with self.owner.create_context() as context:
            context.attach(self.entity_set, self)
            context.refresh(self)


class MediaProcessor(ServiceEntity):
    entity_set: ClassVar[str] = "MediaProcessors"

    name: str | None = Field(default=None, alias="Name")
    description: str | None = Field(default=None, alias="Description")
    vendor: str | None = Field(default=None, alias="Vendor")
    version: str | None = Field(default=None, alias="Version")
    sku: str | None = Field(default=None, alias="Sku")


ENTITY_TYPES: tuple[type[ServiceEntity], ...] = (Asset, Job, MediaProcessor)
