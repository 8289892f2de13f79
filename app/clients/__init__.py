"""LINE and completion API clients"""
from app.clients.line_client import LineClient, SendReplyResponse, LineAPIError
from app.clients.completion_client import CompletionClient, CompletionError

__all__ = ["LineClient", "SendReplyResponse", "LineAPIError", "CompletionClient", "CompletionError"]
