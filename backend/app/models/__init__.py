from app.models.access_log import AccessLog
from app.models.secret import Secret, SecretStatus
from app.models.user import User

__all__ = ["AccessLog", "Secret", "SecretStatus", "User"]
