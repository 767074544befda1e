from .base import Base, metadata
from .organization import Diocese, TestingCenter
from .auth import User, Session
from .chat import Chat

# Import all models to ensure relationships are properly set up
from . import organization, auth, chat

__all__ = [
    'Base',
    'metadata',
    # Organization
    'Diocese',
    'TestingCenter',
    # Auth models
    'User',
    'Session',
    # Chat
    'Chat',
]
