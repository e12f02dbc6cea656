"""Async database service with SQLModel and SQLAlchemy 2.0."""

from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Iterable, List, Optional, Set, Tuple
from sqlmodel import SQLModel, select, col
from sqlalchemy import func, or_, and_
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from core.config import Settings
from models.auth import User
from models.database import Project, ProjectMember, Task, Message, as_utc, isoformat, utcnow
from core.logging import get_logger

logger = get_logger(__name__)

ACTIVE_TASK_STATUSES = ("NEW", "IN_PROGRESS", "REVIEW")

# Task fields a client may change through PUT /api/tasks/{id}
UPDATABLE_TASK_FIELDS = ("title", "description", "status", "priority", "network_type",
                         "due_date", "assignee_id", "is_archived")


def task_to_dict(task: Task, users: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "id": task.id,
        "taskNumber": task.task_number,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "networkType": task.network_type,
        "dueDate": isoformat(task.due_date),
        "isArchived": task.is_archived,
        "assigneeId": task.assignee_id,
        "creatorId": task.creator_id,
        "projectId": task.project_id,
        "assignee": users.get(task.assignee_id) if task.assignee_id else None,
        "creator": users.get(task.creator_id),
        "createdAt": isoformat(task.created_at),
        "updatedAt": isoformat(task.updated_at),
    }


def message_to_dict(message: Message, users: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "id": message.id,
        "content": message.content,
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "isRead": message.is_read,
        "sender": users.get(message.sender_id),
        "receiver": users.get(message.receiver_id),
        "createdAt": isoformat(message.created_at),
    }


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_options: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_options["pool_size"] = self.settings.database_pool_size
                engine_options["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_options)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def _user_summaries(self, session: AsyncSession, ids: Iterable[Optional[int]]) -> Dict[int, Dict[str, Any]]:
        wanted = {i for i in ids if i is not None}
        if not wanted:
            return {}
        result = await session.execute(select(User).where(col(User.id).in_(wanted)))
        return {
            user.id: {"id": user.id, "name": user.name, "avatar": user.avatar, "initials": user.initials}
            for user in result.scalars().all()
        }

    async def _tasks_to_dicts(self, session: AsyncSession, tasks: List[Task]) -> List[Dict[str, Any]]:
        ids = [t.assignee_id for t in tasks] + [t.creator_id for t in tasks]
        users = await self._user_summaries(session, ids)
        return [task_to_dict(task, users) for task in tasks]

    # ============================================================================
    # Users
    # ============================================================================

    async def add_user(self, user: User) -> User:
        async with self.get_session() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def list_users(self, department: Optional[str] = None,
                         search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Employee directory, ordered by name."""
        async with self.get_session() as session:
            stmt = select(User).where(User.is_active == True)  # noqa: E712
            if department and department != "all":
                stmt = stmt.where(User.department == department)
            if search:
                pattern = f"%{search}%"
                stmt = stmt.where(or_(
                    col(User.name).ilike(pattern),
                    col(User.position).ilike(pattern),
                    col(User.email).ilike(pattern),
                ))
            result = await session.execute(stmt.order_by(User.name))
            return [user.to_public() for user in result.scalars().all()]

    async def users_with_status(self, online_window: timedelta) -> List[Dict[str, Any]]:
        """Users with ``isOnline`` true only when seen within ``online_window``."""
        cutoff = datetime.now(timezone.utc) - online_window
        async with self.get_session() as session:
            result = await session.execute(select(User).order_by(User.name))
            users = result.scalars().all()

        return [
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "avatar": user.avatar,
                "status": user.status,
                "isOnline": bool(user.is_online and user.last_seen and as_utc(user.last_seen) > cutoff),
            }
            for user in users
        ]

    async def update_presence(self, user_id: int, is_online: bool) -> bool:
        async with self.get_session() as session:
            user = await session.get(User, user_id)
            if not user:
                return False
            user.is_online = is_online
            user.last_seen = utcnow()
            await session.commit()
            return True

    # ============================================================================
    # Tasks
    # ============================================================================

    async def list_tasks(self, status: Optional[str] = None, search: Optional[str] = None,
                         assignee_id: Optional[int] = None,
                         show_archived: bool = False) -> List[Dict[str, Any]]:
        async with self.get_session() as session:
            stmt = select(Task).where(Task.is_archived == show_archived)
            if status and status != "all":
                stmt = stmt.where(Task.status == status)
            if assignee_id is not None:
                stmt = stmt.where(Task.assignee_id == assignee_id)
            if search:
                pattern = f"%{search}%"
                stmt = stmt.where(or_(col(Task.title).ilike(pattern),
                                      col(Task.description).ilike(pattern)))
            result = await session.execute(stmt.order_by(col(Task.created_at).desc()))
            return await self._tasks_to_dicts(session, list(result.scalars().all()))

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        async with self.get_session() as session:
            task = await session.get(Task, task_id)
            if not task:
                return None
            return (await self._tasks_to_dicts(session, [task]))[0]

    async def create_task(self, **fields) -> Dict[str, Any]:
        """Insert a task with the next free task number."""
        async with self.get_session() as session:
            result = await session.execute(select(func.max(Task.task_number)))
            task = Task(task_number=(result.scalar_one_or_none() or 0) + 1, **fields)
            session.add(task)
            await session.commit()
            await session.refresh(task)
            return (await self._tasks_to_dicts(session, [task]))[0]

    async def update_task(self, task_id: str,
                          changes: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], Set[str]]]:
        """Apply ``changes`` and return the updated task with the fields whose value changed.

        Returns None when the task does not exist.
        """
        async with self.get_session() as session:
            task = await session.get(Task, task_id)
            if not task:
                return None

            changed = set()
            for name in UPDATABLE_TASK_FIELDS:
                if name not in changes:
                    continue
                value = changes[name]
                current = getattr(task, name)
                if isinstance(current, datetime) or isinstance(value, datetime):
                    differs = as_utc(current) != as_utc(value)
                else:
                    differs = current != value
                if differs:
                    setattr(task, name, value)
                    changed.add(name)

            if changed:
                task.updated_at = utcnow()
                await session.commit()
                await session.refresh(task)

            return (await self._tasks_to_dicts(session, [task]))[0], changed

    async def delete_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Delete a task and return its last snapshot, or None if absent."""
        async with self.get_session() as session:
            task = await session.get(Task, task_id)
            if not task:
                return None
            snapshot = (await self._tasks_to_dicts(session, [task]))[0]
            await session.delete(task)
            await session.commit()
            return snapshot

    async def changed_tasks(self, since: Optional[datetime],
                            limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        """Non-archived tasks updated after ``since`` and the count created after it."""
        async with self.get_session() as session:
            stmt = select(Task).where(Task.is_archived == False)  # noqa: E712
            count_stmt = select(func.count()).select_from(Task).where(Task.is_archived == False)  # noqa: E712
            if since is not None:
                stmt = stmt.where(col(Task.updated_at) > since)
                count_stmt = count_stmt.where(col(Task.created_at) > since)
            result = await session.execute(stmt.order_by(col(Task.updated_at).desc()).limit(limit))
            tasks = await self._tasks_to_dicts(session, list(result.scalars().all()))
            new_count = (await session.execute(count_stmt)).scalar_one()
            return tasks, new_count

    # ============================================================================
    # Projects
    # ============================================================================

    async def create_project(self, name: str, owner_id: int, description: Optional[str] = None,
                             member_ids: Iterable[int] = ()) -> Dict[str, Any]:
        async with self.get_session() as session:
            project = Project(name=name, description=description, owner_id=owner_id)
            session.add(project)
            await session.flush()
            for user_id in {owner_id, *member_ids}:
                session.add(ProjectMember(project_id=project.id, user_id=user_id,
                                          role="OWNER" if user_id == owner_id else "MEMBER"))
            await session.commit()
        return await self.get_project(project.id)

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        async with self.get_session() as session:
            project = await session.get(Project, project_id)
            if not project:
                return None
            result = await session.execute(
                select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
            )
            return {
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "ownerId": project.owner_id,
                "memberIds": sorted(result.scalars().all()),
                "createdAt": isoformat(project.created_at),
            }

    async def project_tasks(self, project_id: str, member_ids: List[int],
                            status: Optional[str] = None,
                            search: Optional[str] = None) -> List[Dict[str, Any]]:
        """Tasks filed under the project or assigned to / created by its members."""
        async with self.get_session() as session:
            scope = [Task.project_id == project_id]
            if member_ids:
                scope.append(col(Task.assignee_id).in_(member_ids))
                scope.append(col(Task.creator_id).in_(member_ids))
            conditions = [or_(*scope)]
            if status and status != "all":
                conditions.append(Task.status == status)
            if search:
                pattern = f"%{search}%"
                conditions.append(or_(col(Task.title).ilike(pattern),
                                      col(Task.description).ilike(pattern)))
            stmt = select(Task).where(and_(*conditions)).order_by(col(Task.created_at).desc())
            result = await session.execute(stmt)
            return await self._tasks_to_dicts(session, list(result.scalars().all()))

    # ============================================================================
    # Messages
    # ============================================================================

    async def conversation(self, user_id: int, other_user_id: int,
                           limit: int = 50) -> List[Dict[str, Any]]:
        """Last ``limit`` messages between two users, oldest first."""
        async with self.get_session() as session:
            stmt = (
                select(Message)
                .where(or_(
                    and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                    and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
                ))
                .order_by(col(Message.created_at).desc(), col(Message.id).desc())
                .limit(limit)
            )
            messages = list(reversed((await session.execute(stmt)).scalars().all()))
            users = await self._user_summaries(session, [user_id, other_user_id])
            return [message_to_dict(m, users) for m in messages]

    async def create_message(self, sender_id: int, receiver_id: int, content: str) -> Optional[Dict[str, Any]]:
        """Store a message. Returns None when the receiver does not exist."""
        async with self.get_session() as session:
            if not await session.get(User, receiver_id):
                return None
            message = Message(sender_id=sender_id, receiver_id=receiver_id, content=content)
            session.add(message)
            await session.commit()
            await session.refresh(message)
            users = await self._user_summaries(session, [sender_id, receiver_id])
            return message_to_dict(message, users)

    # ============================================================================
    # Dashboard
    # ============================================================================

    async def dashboard_stats(self) -> Dict[str, Any]:
        """Headline counters with the change over the last seven days."""
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)

        async def count(session, model, *conditions) -> int:
            stmt = select(func.count()).select_from(model)
            for condition in conditions:
                stmt = stmt.where(condition)
            return (await session.execute(stmt)).scalar_one()

        async with self.get_session() as session:
            active = col(Task.status).in_(ACTIVE_TASK_STATUSES)
            older = col(Task.created_at) < week_ago
            total_tasks = await count(session, Task)
            total_tasks_last_week = await count(session, Task, older)
            active_tasks = await count(session, Task, active)
            active_tasks_last_week = await count(session, Task, active, older)
            total_projects = await count(session, Project)
            projects_last_week = await count(session, Project, col(Project.created_at) < week_ago)
            total_users = await count(session, User, User.is_active == True)  # noqa: E712

        return {
            "tasks": {
                "total": total_tasks,
                "active": active_tasks,
                "totalDiff": total_tasks - total_tasks_last_week,
                "activeDiff": active_tasks - active_tasks_last_week,
            },
            "projects": {
                "total": total_projects,
                "diff": total_projects - projects_last_week,
            },
            "users": {
                "total": total_users,
            },
        }
