"""Unit tests for tasks/store.py -- owner-scoped folder and task persistence.

Covers:
- folders: create, list newest first, get, rename, delete
- folder delete removes its tasks in the same call and leaves others alone
- tasks: create, folder_name join, filters (folder, status)
- create/move into a folder the owner lacks raises UnknownFolderError
- ids beyond SQLite's INTEGER range read as missing
- update_task: partial update, updated_at stamp, unknown field rejection
- every read/update/delete is invisible across owners
"""

import pytest

from tasks.models import Folder, Task
from core.database import SQLITE_INT_MAX
from tasks.store import TaskStore, UnknownFolderError

ALICE = 1
BOB = 2
HUGE_ID = SQLITE_INT_MAX + 1

# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded(task_store: TaskStore) -> dict:
    """Alice owns folders Work and Home; Bob owns folder Bob's.

    Tasks:
      - "Ship it"   (Alice, Work, in_progress)
      - "Review"    (Alice, Work, todo)
      - "Groceries" (Alice, Home, done)
      - "Loose end" (Alice, unassigned, todo)
      - "Bob task"  (Bob, Bob's folder)
    """
    work = task_store.create_folder(Folder(name="Work", user_id=ALICE))
    home = task_store.create_folder(Folder(name="Home", user_id=ALICE))
    bobs = task_store.create_folder(Folder(name="Bob's", user_id=BOB))
    ids = {
        "ship": task_store.create_task(Task(title="Ship it", user_id=ALICE, folder_id=work, status="in_progress")),
        "review": task_store.create_task(Task(title="Review", user_id=ALICE, folder_id=work)),
        "groceries": task_store.create_task(Task(title="Groceries", user_id=ALICE, folder_id=home, status="done")),
        "loose": task_store.create_task(Task(title="Loose end", user_id=ALICE)),
        "bob": task_store.create_task(Task(title="Bob task", user_id=BOB, folder_id=bobs)),
    }
    return {"work": work, "home": home, "bobs": bobs, **ids}


class TestFolders:
    def test_create_and_get(self, task_store: TaskStore) -> None:
        folder_id = task_store.create_folder(Folder(name="Work", user_id=ALICE))
        folder = task_store.get_folder(folder_id, ALICE)
        assert folder.id == folder_id
        assert folder.name == "Work"
        assert folder.user_id == ALICE
        assert folder.created_at

    def test_names_need_not_be_unique(self, task_store: TaskStore) -> None:
        task_store.create_folder(Folder(name="Work", user_id=ALICE))
        task_store.create_folder(Folder(name="Work", user_id=ALICE))
        assert [f.name for f in task_store.list_folders(ALICE)] == ["Work", "Work"]

    def test_list_is_newest_first_and_owner_scoped(self, task_store: TaskStore, seeded: dict) -> None:
        assert [f.name for f in task_store.list_folders(ALICE)] == ["Home", "Work"]
        assert [f.name for f in task_store.list_folders(BOB)] == ["Bob's"]

    def test_other_users_folder_is_invisible(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.get_folder(seeded["bobs"], ALICE) is None
        assert not task_store.folder_exists(seeded["bobs"], ALICE)
        assert task_store.folder_exists(seeded["bobs"], BOB)

    def test_rename(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.update_folder(seeded["work"], ALICE, "Office")
        assert task_store.get_folder(seeded["work"], ALICE).name == "Office"

    def test_rename_other_users_folder_fails(self, task_store: TaskStore, seeded: dict) -> None:
        assert not task_store.update_folder(seeded["bobs"], ALICE, "Mine now")
        assert task_store.get_folder(seeded["bobs"], BOB).name == "Bob's"

    def test_delete_cascades_to_its_tasks_only(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.delete_folder(seeded["work"], ALICE)
        assert task_store.get_folder(seeded["work"], ALICE) is None
        assert task_store.get_task(seeded["ship"], ALICE) is None
        assert task_store.get_task(seeded["review"], ALICE) is None
        remaining = {t.title for t in task_store.list_tasks(ALICE)}
        assert remaining == {"Groceries", "Loose end"}

    def test_delete_other_users_folder_deletes_nothing(self, task_store: TaskStore, seeded: dict) -> None:
        assert not task_store.delete_folder(seeded["bobs"], ALICE)
        assert task_store.get_folder(seeded["bobs"], BOB) is not None
        assert task_store.get_task(seeded["bob"], BOB) is not None

    def test_delete_missing_folder(self, task_store: TaskStore) -> None:
        assert not task_store.delete_folder(999, ALICE)


class TestTasks:
    def test_create_defaults(self, task_store: TaskStore) -> None:
        task_id = task_store.create_task(Task(title="Plain", user_id=ALICE))
        task = task_store.get_task(task_id, ALICE)
        assert task.status == "todo"
        assert task.priority == "medium"
        assert task.folder_id is None
        assert task.folder_name is None
        assert task.created_at == task.updated_at

    def test_folder_name_is_joined(self, task_store: TaskStore, seeded: dict) -> None:
        task = task_store.get_task(seeded["ship"], ALICE)
        assert task.folder_id == seeded["work"]
        assert task.folder_name == "Work"

    def test_list_all(self, task_store: TaskStore, seeded: dict) -> None:
        titles = [t.title for t in task_store.list_tasks(ALICE)]
        assert titles == ["Loose end", "Groceries", "Review", "Ship it"]

    def test_list_by_folder(self, task_store: TaskStore, seeded: dict) -> None:
        titles = {t.title for t in task_store.list_tasks(ALICE, folder_id=seeded["work"])}
        assert titles == {"Ship it", "Review"}

    def test_list_by_status(self, task_store: TaskStore, seeded: dict) -> None:
        assert [t.title for t in task_store.list_tasks(ALICE, status="done")] == ["Groceries"]
        titles = {t.title for t in task_store.list_tasks(ALICE, folder_id=seeded["work"], status="todo")}
        assert titles == {"Review"}

    def test_other_users_folder_filter_returns_nothing(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.list_tasks(ALICE, folder_id=seeded["bobs"]) == []

    def test_partial_update(self, task_store: TaskStore, seeded: dict) -> None:
        before = task_store.get_task(seeded["review"], ALICE)
        assert task_store.update_task(seeded["review"], ALICE, status="done", due_date="2024-01-15")
        after = task_store.get_task(seeded["review"], ALICE)
        assert after.status == "done"
        assert after.due_date == "2024-01-15"
        assert after.title == before.title
        assert after.folder_id == before.folder_id
        assert after.updated_at >= before.updated_at

    def test_move_to_unassigned(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.update_task(seeded["ship"], ALICE, folder_id=None)
        task = task_store.get_task(seeded["ship"], ALICE)
        assert task.folder_id is None
        assert task.folder_name is None

    def test_update_rejects_unknown_fields(self, task_store: TaskStore, seeded: dict) -> None:
        with pytest.raises(ValueError):
            task_store.update_task(seeded["ship"], ALICE, created_at="2000-01-01")

    def test_other_users_task_is_invisible(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.get_task(seeded["bob"], ALICE) is None
        assert not task_store.update_task(seeded["bob"], ALICE, title="hijacked")
        assert not task_store.delete_task(seeded["bob"], ALICE)
        assert task_store.get_task(seeded["bob"], BOB).title == "Bob task"

    def test_delete(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.delete_task(seeded["loose"], ALICE)
        assert task_store.get_task(seeded["loose"], ALICE) is None
        assert not task_store.delete_task(seeded["loose"], ALICE)

    def test_create_in_foreign_folder_inserts_nothing(self, task_store: TaskStore, seeded: dict) -> None:
        with pytest.raises(UnknownFolderError):
            task_store.create_task(Task(title="Sneaky", user_id=ALICE, folder_id=seeded["bobs"]))
        with pytest.raises(UnknownFolderError):
            task_store.create_task(Task(title="Ghost", user_id=ALICE, folder_id=999))
        assert "Sneaky" not in {t.title for t in task_store.list_tasks(ALICE)}

    def test_move_to_deleted_folder_is_rejected(self, task_store: TaskStore, seeded: dict) -> None:
        task_store.delete_folder(seeded["home"], ALICE)
        with pytest.raises(UnknownFolderError):
            task_store.update_task(seeded["loose"], ALICE, folder_id=seeded["home"], title="Moved")
        task = task_store.get_task(seeded["loose"], ALICE)
        assert task.folder_id is None
        assert task.title == "Loose end"


class TestOutOfRangeIds:
    """Ids too large for a SQLite INTEGER behave like ids that do not exist."""

    def test_task_lookups(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.get_task(HUGE_ID, ALICE) is None
        assert task_store.get_task(-HUGE_ID - 1, ALICE) is None
        assert not task_store.update_task(HUGE_ID, ALICE, title="x")
        assert not task_store.delete_task(HUGE_ID, ALICE)

    def test_folder_lookups(self, task_store: TaskStore, seeded: dict) -> None:
        assert task_store.get_folder(HUGE_ID, ALICE) is None
        assert not task_store.folder_exists(HUGE_ID, ALICE)
        assert not task_store.update_folder(HUGE_ID, ALICE, "x")
        assert not task_store.delete_folder(HUGE_ID, ALICE)
        assert task_store.list_tasks(ALICE, folder_id=HUGE_ID) == []

    def test_task_in_out_of_range_folder(self, task_store: TaskStore) -> None:
        with pytest.raises(UnknownFolderError):
            task_store.create_task(Task(title="x", user_id=ALICE, folder_id=HUGE_ID))
