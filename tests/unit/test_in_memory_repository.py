"""In-memory Repository Adapter のテスト"""

import re

import pytest

from clientdesk.adapters.in_memory_repository import (
    InMemoryBlobStorage,
    InMemoryClientNotesRepository,
    InMemoryClientsRepository,
    InMemoryDatabase,
    InMemoryDocumentsRepository,
    InMemoryIdentityProvisioner,
    InMemoryNotificationsRepository,
    InMemoryProjectsRepository,
    InMemoryTaskCategoriesRepository,
    InMemoryTaskRepository,
    new_id,
)
from clientdesk.domain.errors import NotFoundError, ValidationError
from clientdesk.domain.models import (
    ClientContactInput,
    ClientDocumentInput,
    ClientInput,
    ClientNoteInput,
    ClientPatch,
    ClientsQuery,
    DocumentFilter,
    DocumentInput,
    DocumentKind,
    NoteAttachmentInput,
    NotificationsQuery,
    ProjectInput,
    ProjectPatch,
    ProjectsQuery,
    ProjectStatus,
    ResolvedFilter,
    TaskCategoryInput,
    TaskCategoryPatch,
    TaskInput,
    TaskPatch,
    TaskQuery,
    TaskStatus,
)


class TestNewId:
    def test_format(self):
        assert re.fullmatch(r"t_[0-9a-f]+_[0-9a-f]{8}", new_id("t"))

    def test_unique(self):
        assert len({new_id("c") for _ in range(100)}) == 100


class TestInMemoryDatabase:
    def test_timestamps_strictly_increase(self, db):
        first = db.insert("tasks", {"description": "a"}, "t")
        second = db.insert("tasks", {"description": "b"}, "t")
        assert first["created_at"] < second["created_at"]

    def test_update_bumps_updated_at(self, db):
        row = db.insert("tasks", {"description": "a"}, "t")
        updated = db.update("tasks", row["id"], {"description": "b"})
        assert updated["updated_at"] > row["updated_at"]
        assert updated["created_at"] == row["created_at"]

    def test_returned_rows_are_copies(self, db):
        row = db.insert("tasks", {"description": "a"}, "t")
        row["description"] = "mutated"
        assert db.get("tasks", row["id"])["description"] == "a"


# ========== Clients ==========


class TestInMemoryClientsRepository:
    @pytest.fixture
    def repo(self, db):
        return InMemoryClientsRepository(db)

    async def test_create_drops_blank_contacts(self, repo, sample_client_input):
        client = await repo.create(sample_client_input)

        assert client.id.startswith("c_")
        assert [c.name for c in client.contacts] == ["Dana"]
        assert client.contacts[0].id.startswith("cc_")

    async def test_create_requires_name(self, repo):
        with pytest.raises(ValidationError):
            await repo.create(ClientInput(name=""))

    async def test_update_replaces_contacts(self, repo, sample_client_input):
        client = await repo.create(sample_client_input)

        updated = await repo.update(
            client.id, ClientPatch(contacts=[ClientContactInput(name="Eli"), ClientContactInput(name="Noa")])
        )

        assert [c.name for c in updated.contacts] == ["Eli", "Noa"]

    async def test_update_clears_contacts_with_none(self, repo, sample_client_input):
        client = await repo.create(sample_client_input)

        updated = await repo.update(client.id, ClientPatch(contacts=None))

        assert updated.contacts == []

    async def test_update_missing_raises(self, repo):
        with pytest.raises(NotFoundError, match="Client not found"):
            await repo.update("nope", ClientPatch(notes="x"))

    async def test_remove_missing_raises(self, repo):
        with pytest.raises(NotFoundError, match="Client not found"):
            await repo.remove("nope")

    async def test_remove_cascades_contacts(self, repo, db, sample_client_input):
        client = await repo.create(sample_client_input)

        await repo.remove(client.id)

        assert db.rows("client_contacts") == []
        assert await repo.get_by_id(client.id) is None

    async def test_list_search_and_order(self, repo):
        # Arrange
        await repo.create(ClientInput(name="Acme"))
        await repo.create(ClientInput(name="Beta", notes="acme partner"))
        await repo.create(ClientInput(name="Gamma"))

        # Act
        clients = await repo.list(ClientsQuery(search_text="ACME"))

        # Assert
        assert [c.name for c in clients] == ["Beta", "Acme"]

    async def test_documents(self, repo):
        client = await repo.create(ClientInput(name="Acme"))

        doc = await repo.add_document(
            client.id, ClientDocumentInput(title="T", storage_path="clients/x/1.pdf", file_name="a.pdf")
        )

        assert [d.id for d in (await repo.get_by_id(client.id)).documents] == [doc.id]
        await repo.remove_document(doc.id)
        with pytest.raises(NotFoundError, match="Document not found"):
            await repo.remove_document(doc.id)

    async def test_add_document_missing_client(self, repo):
        with pytest.raises(NotFoundError):
            await repo.add_document("nope", ClientDocumentInput(title="T", storage_path="p", file_name="f"))

    async def test_link_auth_user(self, repo):
        client = await repo.create(ClientInput(name="Acme"))

        await repo.link_auth_user(client.id, "auth-1")

        assert (await repo.get_by_id(client.id)).client_user_id == "auth-1"


# ========== Projects ==========


class TestInMemoryProjectsRepository:
    async def test_client_name_joined(self, db):
        clients = InMemoryClientsRepository(db)
        projects = InMemoryProjectsRepository(db)
        client = await clients.create(ClientInput(name="Acme"))

        project = await projects.create(ProjectInput(client_id=client.id, name="Site"))

        assert project.id.startswith("p_")
        assert project.client_name == "Acme"

    async def test_filters(self, db):
        # Arrange
        repo = InMemoryProjectsRepository(db)
        await repo.create(ProjectInput(client_id="c1", name="Website"))
        await repo.create(ProjectInput(client_id="c1", name="Web shop", status=ProjectStatus.COMPLETED))
        await repo.create(ProjectInput(client_id="c2", name="Website"))

        # Act
        projects = await repo.list(ProjectsQuery(search_text="web", status=ProjectStatus.ACTIVE, client_id="c1"))

        # Assert
        assert [(p.client_id, p.name) for p in projects] == [("c1", "Website")]

    async def test_update_and_missing(self, db):
        repo = InMemoryProjectsRepository(db)
        project = await repo.create(ProjectInput(client_id="c1", name="Site", description="keep"))

        updated = await repo.update(project.id, ProjectPatch(budget=10))

        assert updated.budget == 10
        assert updated.description == "keep"
        with pytest.raises(NotFoundError, match="Project not found"):
            await repo.update("nope", ProjectPatch(budget=1))


# ========== Tasks ==========


class TestInMemoryTaskRepository:
    async def test_joins_assignee_and_category(self, db):
        # Arrange
        db.add_user("u1", "Noa")
        categories = InMemoryTaskCategoriesRepository(db)
        category = await categories.create(TaskCategoryInput(name="Billing", color="#0af"))
        repo = InMemoryTaskRepository(db)

        # Act
        task = await repo.create(TaskInput(description="Call", assignee_id="u1", category_id=category.id))

        # Assert
        assert task.assignee_name == "Noa"
        assert task.category_name == "Billing"
        assert task.category_color == "#0af"

    async def test_personal_filter(self, db):
        repo = InMemoryTaskRepository(db)
        await repo.create(TaskInput(description="Shared"))
        await repo.create(TaskInput(description="Mine", is_personal=True, owner_user_id="user-1"))
        await repo.create(TaskInput(description="Theirs", is_personal=True, owner_user_id="user-2"))

        visible = await repo.list(TaskQuery(viewer_user_id="user-1"))

        assert {t.description for t in visible} == {"Shared", "Mine"}

    async def test_update_moves_to_top(self, db):
        repo = InMemoryTaskRepository(db)
        first = await repo.create(TaskInput(description="First"))
        await repo.create(TaskInput(description="Second"))

        await repo.update(first.id, TaskPatch(status=TaskStatus.DONE))

        assert [t.description for t in await repo.list()] == ["First", "Second"]

    async def test_missing(self, db):
        repo = InMemoryTaskRepository(db)
        with pytest.raises(NotFoundError, match="Task not found"):
            await repo.update("nope", TaskPatch(status=TaskStatus.DONE))
        with pytest.raises(NotFoundError, match="Task not found"):
            await repo.remove("nope")


# ========== Task categories / Documents ==========


class TestInMemoryTaskCategoriesRepository:
    async def test_crud(self, db):
        repo = InMemoryTaskCategoriesRepository(db)
        category = await repo.create(TaskCategoryInput(name="Client Calls"))

        updated = await repo.update(category.id, TaskCategoryPatch(name="Calls"))

        assert category.slug == "client-calls"
        assert updated.name == "Calls"
        assert updated.slug == "client-calls"
        await repo.remove(category.id)
        with pytest.raises(NotFoundError, match="Category not found"):
            await repo.remove(category.id)


class TestInMemoryDocumentsRepository:
    async def test_filter_and_names(self, db):
        # Arrange
        db.add_user("user-1", "Noa")
        client = await InMemoryClientsRepository(db).create(ClientInput(name="Acme"))
        repo = InMemoryDocumentsRepository(db)
        await repo.create(
            DocumentInput(
                title="Receipt",
                storage_path="general/1",
                file_name="a",
                kind=DocumentKind.RECEIPT,
                client_id=client.id,
                uploaded_by="user-1",
            )
        )
        await repo.create(DocumentInput(title="Quote", storage_path="general/2", file_name="b", kind=DocumentKind.QUOTE))

        # Act
        receipts = await repo.list(DocumentFilter(kind=DocumentKind.RECEIPT))

        # Assert
        assert [d.title for d in receipts] == ["Receipt"]
        assert receipts[0].client_name == "Acme"
        assert receipts[0].uploaded_by_name == "Noa"

    async def test_remove_missing(self, db):
        with pytest.raises(NotFoundError, match="Document not found"):
            await InMemoryDocumentsRepository(db).remove("nope")


# ========== Client notes ==========


class TestInMemoryClientNotesRepository:
    @pytest.fixture
    def storage(self):
        return InMemoryBlobStorage()

    @pytest.fixture
    def repo(self, db, storage):
        return InMemoryClientNotesRepository(db, storage)

    async def test_create_with_attachments(self, repo, storage):
        attachments = [NoteAttachmentInput(file_name=f"{i}.png", content=b"x") for i in range(4)]

        note = await repo.create(ClientNoteInput(client_id="c1", body="hi", attachments=attachments), "user-1")

        assert len(note.attachments) == 3
        assert len(storage.objects) == 3
        assert note.attachments[0].public_url.startswith("memory://local/storage/v1/object/public/documents/")

    async def test_resolve_is_idempotent(self, repo):
        note = await repo.create(ClientNoteInput(client_id="c1", body="hi"), "user-1")

        first = await repo.set_resolved(note.id, True, "admin-1")
        second = await repo.set_resolved(note.id, True, "admin-2")

        assert first.resolved_at is not None
        assert second.resolved_at == first.resolved_at
        assert second.resolved_by == "admin-1"

    async def test_unresolve_clears_pair(self, repo):
        note = await repo.create(ClientNoteInput(client_id="c1", body="hi"), "user-1")
        await repo.set_resolved(note.id, True, "admin-1")

        reopened = await repo.set_resolved(note.id, False)

        assert (reopened.is_resolved, reopened.resolved_at, reopened.resolved_by) == (False, None, None)

    async def test_inbox_and_limit(self, repo, db):
        # Arrange
        client = await InMemoryClientsRepository(db).create(ClientInput(name="Acme"))
        old = await repo.create(ClientNoteInput(client_id=client.id, body="old"), "user-1")
        done = await repo.create(ClientNoteInput(client_id=client.id, body="done"), "user-1")
        new = await repo.create(ClientNoteInput(client_id=client.id, body="new"), "user-2")
        await repo.set_resolved(done.id, True, "admin")

        # Act
        everything = await repo.list_all()
        limited = await repo.list_all(ResolvedFilter.UNRESOLVED, limit=1)
        mine = await repo.list_for_client(client.id, "user-1")

        # Assert
        assert [n.id for n in everything] == [new.id, old.id, done.id]
        assert everything[0].client_name == "Acme"
        assert [n.id for n in limited] == [new.id]
        assert {n.id for n in mine} == {old.id, done.id}
        assert mine[0].client_name is None

    async def test_missing(self, repo):
        with pytest.raises(NotFoundError, match="Note not found"):
            await repo.set_resolved("nope", True)
        with pytest.raises(NotFoundError, match="Note not found"):
            await repo.remove("nope")

    async def test_remove_cascades_attachments(self, repo, db):
        note = await repo.create(
            ClientNoteInput(client_id="c1", body="", attachments=[NoteAttachmentInput(file_name="a.png", content=b"x")]),
            "user-1",
        )

        await repo.remove(note.id)

        assert db.rows("client_note_attachments") == []


# ========== Notifications / Identity ==========


class TestInMemoryNotificationsRepository:
    async def test_mark_read_and_all(self, db):
        # Arrange
        repo = InMemoryNotificationsRepository(db)
        a = repo.add("user-1", "A")
        repo.add("user-1", "B")
        other = repo.add("user-2", "C")

        # Act
        await repo.mark_read(a.id)
        unread_after_one = await repo.list(NotificationsQuery(viewer_user_id="user-1", only_unread=True))
        await repo.mark_all_read("user-1")

        # Assert
        assert [n.title for n in unread_after_one] == ["B"]
        assert await repo.list(NotificationsQuery(viewer_user_id="user-1", only_unread=True)) == []
        others = await repo.list(NotificationsQuery(viewer_user_id="user-2"))
        assert [n.id for n in others] == [other.id]
        assert others[0].is_read is False

    async def test_mark_read_missing_is_noop(self, db):
        await InMemoryNotificationsRepository(db).mark_read("nope")

    async def test_no_viewer(self, db):
        repo = InMemoryNotificationsRepository(db)
        repo.add("user-1", "A")
        assert await repo.list(NotificationsQuery()) == []


class TestInMemoryIdentityProvisioner:
    async def test_registers_user(self, db):
        provisioner = InMemoryIdentityProvisioner(db)

        user_id = await provisioner.create_client_user("dana@acme.test", "pw", "Dana")

        assert db.get("users", user_id)["display_name"] == "Dana"

    async def test_duplicate_email(self, db):
        provisioner = InMemoryIdentityProvisioner(db)
        await provisioner.create_client_user("dana@acme.test", "pw", "Dana")

        with pytest.raises(ValidationError, match="already registered"):
            await provisioner.create_client_user(" DANA@acme.test", "pw", "Dana")

    async def test_requires_email_and_password(self, db):
        with pytest.raises(ValidationError):
            await InMemoryIdentityProvisioner(db).create_client_user("", "pw", "Dana")
