from app.models.access_policy import AccessPolicy
from app.models.secret import Secret
from app.models.tool_call import ToolCall

__all__ = ["AccessPolicy", "Secret", "ToolCall"]
