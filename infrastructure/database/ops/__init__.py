"""SQL mixins composed into :class:`~infrastructure.database.sqlite_handler.SQLiteDatabaseHandler`."""
