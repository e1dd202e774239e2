"""Database access: connections, migrations and the tabular store."""
