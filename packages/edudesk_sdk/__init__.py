"""Public edudesk SDK interface for CLI and UI callers."""

from packages.edudesk_sdk.client import EdudeskClient
from packages.edudesk_sdk.collection import EntityCollection, EntityRecord, SyncState
from packages.edudesk_sdk.config import SdkConfig
from packages.edudesk_sdk.credentials import (
    Credential,
    CredentialStore,
    Profile,
    SessionEndReason,
)
from packages.edudesk_sdk.errors import (
    AuthExpiredError,
    EdudeskSdkError,
    HttpError,
    NetworkError,
    ReconciliationError,
    describe_failure,
)
from packages.edudesk_sdk.ids import EntityId, LocalId, LocalIdFactory, ServerId
from packages.edudesk_sdk.mutations import (
    InsertPosition,
    MutationIntent,
    MutationKind,
    OptimisticMutationController,
)
from packages.edudesk_sdk.pipeline import ApiRequest, RequestPipeline
from packages.edudesk_sdk.renewal import RenewalState
from packages.edudesk_sdk.resources import (
    DECISIONS,
    DOCUMENTS,
    MEETINGS,
    RESOURCES,
    TASKS,
    Decision,
    Document,
    Meeting,
    ResourceSpec,
    Task,
    get_resource,
)
from packages.edudesk_sdk.session import SessionClient
from packages.edudesk_sdk.storage import JsonFileStorage, KeyValueStorage, MemoryStorage

__all__ = [
    "ApiRequest",
    "AuthExpiredError",
    "Credential",
    "CredentialStore",
    "DECISIONS",
    "DOCUMENTS",
    "Decision",
    "Document",
    "EdudeskClient",
    "EdudeskSdkError",
    "EntityCollection",
    "EntityId",
    "EntityRecord",
    "HttpError",
    "InsertPosition",
    "JsonFileStorage",
    "KeyValueStorage",
    "LocalId",
    "LocalIdFactory",
    "MEETINGS",
    "Meeting",
    "MemoryStorage",
    "MutationIntent",
    "MutationKind",
    "NetworkError",
    "OptimisticMutationController",
    "Profile",
    "RESOURCES",
    "ReconciliationError",
    "RenewalState",
    "RequestPipeline",
    "ResourceSpec",
    "SdkConfig",
    "ServerId",
    "SessionClient",
    "SessionEndReason",
    "SyncState",
    "TASKS",
    "Task",
    "describe_failure",
    "get_resource",
]
