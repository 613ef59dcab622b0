# Routes package

from teamchat.routes.chat import chat_bp

__all__ = ['chat_bp']
