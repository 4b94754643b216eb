"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from clientdesk.domain.errors import (
    BackendConfigError,
    ClientDeskError,
    EmptyResultError,
    NotFoundError,
    RestError,
    ValidationError,
)
from clientdesk.domain.models import (
    UNSET,
    AppDocument,
    Client,
    ClientContact,
    ClientNote,
    ClientNoteAttachment,
    DocumentKind,
    Notification,
    Project,
    ProjectStatus,
    ResolvedFilter,
    Task,
    TaskCategory,
    TaskPriority,
    TaskStatus,
)
from clientdesk.domain.ports import (
    BlobStorage,
    ClientNotesRepository,
    ClientsRepository,
    DocumentsRepository,
    IdentityProvisioner,
    NotificationsRepository,
    ProjectsRepository,
    SessionProvider,
    TaskCategoriesRepository,
    TaskRepository,
)

__all__ = [
    # Models
    "UNSET",
    "Client",
    "ClientContact",
    "Project",
    "ProjectStatus",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskCategory",
    "AppDocument",
    "DocumentKind",
    "ClientNote",
    "ClientNoteAttachment",
    "ResolvedFilter",
    "Notification",
    # Errors
    "ClientDeskError",
    "BackendConfigError",
    "RestError",
    "EmptyResultError",
    "NotFoundError",
    "ValidationError",
    # Ports
    "ClientsRepository",
    "ProjectsRepository",
    "TaskRepository",
    "TaskCategoriesRepository",
    "DocumentsRepository",
    "ClientNotesRepository",
    "NotificationsRepository",
    "BlobStorage",
    "IdentityProvisioner",
    "SessionProvider",
]
