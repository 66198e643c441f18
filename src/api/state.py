from storage.base import Store
from storage.memory_store import MemoryStore

# Swapped for a PostgresStore at startup when DATABASE_URL is set
store: Store = MemoryStore()
