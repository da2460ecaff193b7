from clixen.session.resolver import SessionResolver

__all__ = ["SessionResolver"]
