from sqlmodel import Session, select
from typing import Any, List, Optional
from models.auth import User, UserRole
from models.boards import BoardColumn, Task
from models.helper import utcnow
from rules.collaborators import TaskStore


class SqlTaskStore(TaskStore):
    """Task and column storage on the service database."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.db_session.get(Task, task_id)

    def get_column(self, column_id: str) -> Optional[BoardColumn]:
        return self.db_session.get(BoardColumn, column_id)

    def tasks_in_column(self, column_id: str) -> List[Task]:
        statement = (
            select(Task)
            .where(Task.column_id == column_id)
            .order_by(Task.position, Task.created_at)
        )
        return list(self.db_session.exec(statement).all())

    def commit_move(self, task: Task, to_column: BoardColumn, position: int) -> Task:
        origin_column_id = task.column_id
        now = utcnow()

        siblings = [other for other in self.tasks_in_column(to_column.id) if other.id != task.id]
        position = max(0, min(position, len(siblings)))
        siblings.insert(position, task)
        for index, sibling in enumerate(siblings):
            sibling.position = index
            self.db_session.add(sibling)

        if origin_column_id != to_column.id:
            remaining = [other for other in self.tasks_in_column(origin_column_id) if other.id != task.id]
            for index, other in enumerate(remaining):
                other.position = index
                self.db_session.add(other)
            task.column_id = to_column.id
            task.board_id = to_column.board_id
            task.column_entered_at = now

        task.updated_at = now
        self.db_session.add(task)
        self.db_session.commit()
        self.db_session.refresh(task)
        return task

    def update_fields(self, task: Task, **fields: Any) -> Task:
        for name, value in fields.items():
            setattr(task, name, value)
        task.updated_at = utcnow()
        self.db_session.add(task)
        self.db_session.commit()
        self.db_session.refresh(task)
        return task

    def create_task(self, **fields: Any) -> Task:
        column_id = fields["column_id"]
        fields.setdefault("position", len(self.tasks_in_column(column_id)))
        task = Task(**fields)
        self.db_session.add(task)
        self.db_session.commit()
        self.db_session.refresh(task)
        return task

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db_session.get(User, user_id)

    def users_with_role(self, role: str) -> List[User]:
        statement = select(User).where(User.role == UserRole(role.upper()), User.is_active == True)
        return list(self.db_session.exec(statement).all())
