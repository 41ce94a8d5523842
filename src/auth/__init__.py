from .dependencies import require_operator, get_current_staff
from .utils import create_access_token, verify_token

__all__ = ["require_operator", "get_current_staff", "create_access_token", "verify_token"]
