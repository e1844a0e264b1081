# Import models here so metadata.create_all can discover them.
from app.models.tenant import Tenant  # noqa: F401
from app.models.store import Store  # noqa: F401
from app.models.user import User  # noqa: F401
