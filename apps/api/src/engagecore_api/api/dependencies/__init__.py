from .security import require_admin_api_key

__all__ = ["require_admin_api_key"]
