from projectchat.models.chat import Chat, Message, Project
from projectchat.models.user import User

__all__ = ["Chat", "Message", "Project", "User"]
