"""Store subpackage — imports trigger @register_store decorators."""

from offline_sync.stores.sqlalchemy_store import SQLAlchemyStore  # noqa: F401
from offline_sync.stores.json_file import JSONFileStore  # noqa: F401
