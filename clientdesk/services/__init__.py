"""Services layer - Store と複数エンティティにまたがる処理"""

from clientdesk.services.client_accounts import ClientAccountService
from clientdesk.services.client_notes_store import ClientNotesStore
from clientdesk.services.clients_store import ClientsStore
from clientdesk.services.documents_store import DocumentsStore
from clientdesk.services.notifications_store import NotificationsStore
from clientdesk.services.projects_store import ProjectsStore
from clientdesk.services.store import Store, StoreStatus
from clientdesk.services.task_categories_store import TaskCategoriesStore
from clientdesk.services.tasks_store import TasksStore

__all__ = [
    "Store",
    "StoreStatus",
    "ClientAccountService",
    "ClientsStore",
    "ProjectsStore",
    "TasksStore",
    "TaskCategoriesStore",
    "DocumentsStore",
    "ClientNotesStore",
    "NotificationsStore",
]
