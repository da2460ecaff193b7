from clixen.protocols.audit import AuditSink
from clixen.protocols.channels import ResponseChannel
from clixen.protocols.directory import Directory

__all__ = ["AuditSink", "Directory", "ResponseChannel"]
