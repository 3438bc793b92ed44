from orgflow.core.config import settings
from orgflow.repositories.data_store import DirectoryStore, JsonCollection, RequestStore
from orgflow.services.approval_service import ApprovalService
from orgflow.services.audit_service import EventLogger
from orgflow.services.auth_service import AuthService
from orgflow.services.hierarchy_service import HierarchyService


def _backend(key: str) -> JsonCollection | None:
    return JsonCollection(settings.data_dir, key) if settings.persist else None


directory_store = DirectoryStore(
    backend=_backend(settings.directory_collection),
    lock_timeout=settings.lock_timeout_seconds,
)
request_store = RequestStore(
    backend=_backend(settings.requests_collection),
    lock_timeout=settings.lock_timeout_seconds,
)
event_logger = EventLogger()

auth_service = AuthService(directory=directory_store, event_logger=event_logger)
hierarchy_service = HierarchyService(directory=directory_store, event_logger=event_logger)
approval_service = ApprovalService(
    requests=request_store,
    directory=directory_store,
    event_logger=event_logger,
)
