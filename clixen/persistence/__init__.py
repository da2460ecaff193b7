from clixen.persistence.migrations import run_migrations

__all__ = ["run_migrations"]
