from clixen.directory.postgrest import PostgrestDirectory
from clixen.directory.sqlite_directory import SQLiteDirectory

__all__ = ["PostgrestDirectory", "SQLiteDirectory"]
