# SQLModel definitions, imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .todo import Todo  # noqa: F401
from .todo_share import TodoShare  # noqa: F401
from .message import Message  # noqa: F401
from .invitation import OrgInvitation  # noqa: F401
from .verification_token import VerificationToken  # noqa: F401
from .notification import TodoNotification  # noqa: F401
from .motivational_message import MotivationalMessage  # noqa: F401
