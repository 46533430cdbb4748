# buddyband/apps/dashboard/scope.py
from collections.abc import Mapping

SUPERVISOR_FIELD = 'teacherID'


def scope_filter(snapshot, teacher_id, field=SUPERVISOR_FIELD):
    """
    Return the records of a keyed snapshot that belong to one supervisor.

    Each record comes back as a new dict annotated with its key under 'id',
    in the snapshot's own order. A missing snapshot or supervisor yields an
    empty list. The snapshot is never modified.
    """
    if not snapshot or teacher_id is None:
        return []

    scoped = []
    for key, record in snapshot.items():
        if not isinstance(record, Mapping):
            continue
        if record.get(field) != teacher_id:
            continue
        scoped.append({**record, 'id': key})
    return scoped
