from sqlalchemy import event

from .models import AuditLogEntry, Document


class AuditLogImmutable(RuntimeError):
    pass


@event.listens_for(AuditLogEntry, "before_update")
def block_audit_update(mapper, connection, target: AuditLogEntry):
    raise AuditLogImmutable(f"Audit entry {target.id} is append-only.")


@event.listens_for(AuditLogEntry, "before_delete")
def block_audit_delete(mapper, connection, target: AuditLogEntry):
    raise AuditLogImmutable(f"Audit entry {target.id} cannot be deleted.")


@event.listens_for(Document, "before_insert")
@event.listens_for(Document, "before_update")
def normalize_title(mapper, connection, target: Document):
    if target.title:
        target.title = target.title.strip()
