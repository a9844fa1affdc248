"""Todo share join table (the SPECIFIC visibility list)."""

import uuid

from sqlmodel import Field, SQLModel


class TodoShare(SQLModel, table=True):
    __tablename__ = "todo_shares"

    todo_id: uuid.UUID = Field(foreign_key="todos.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, index=True)
