# reviewdesk/services/store.py
import logging
from datetime import datetime

from sqlalchemy import update

from ..extensions import db
from ..models.deliverable import Deliverable, DRAFT
from ..models.fileasset import DeliverableFile
from ..models.project import Project
from ..workflow.errors import NotFound, ConcurrentModification

log = logging.getLogger(__name__)


class DeliverableStore:
    """Durable record of deliverables, backed by the app's SQLAlchemy session.

    Transitions go through ``save_if_version_matches`` only: a single
    conditional UPDATE plus the event row, committed together.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    # -----------------
    # Reads
    # -----------------

    def load(self, deliverable_id) -> Deliverable:
        d = self.session.get(Deliverable, deliverable_id)
        if d is None:
            raise NotFound(deliverable_id)
        return d

    def list(self, project_id=None, status=None, type=None, client_id=None):
        q = self.session.query(Deliverable)
        if client_id is not None:
            q = q.join(Project, Deliverable.project_id == Project.id).filter(Project.client_id == client_id)
        if project_id is not None:
            q = q.filter(Deliverable.project_id == project_id)
        if status:
            q = q.filter(Deliverable.status == status)
        if type:
            q = q.filter(Deliverable.type == type)
        return q.order_by(Deliverable.created_at.desc(), Deliverable.id.desc()).all()

    # -----------------
    # Transitions
    # -----------------

    def save_if_version_matches(self, deliverable_id, changes: dict, *, expected_status,
                                expected_version, event, files=()):
        """Apply ``changes`` only if status and version are still what the caller read.

        Raises ConcurrentModification (after rolling back) when another
        transition got there first; nothing is written in that case.
        """
        values = dict(changes)
        values.setdefault("updated_at", datetime.utcnow())
        stmt = (
            update(Deliverable)
            .where(
                Deliverable.id == deliverable_id,
                Deliverable.status == expected_status,
                Deliverable.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                log.warning(
                    "Lost update on deliverable %s (expected status=%s version=%s)",
                    deliverable_id, expected_status, expected_version,
                )
                raise ConcurrentModification(deliverable_id, expected_status, expected_version)

            event.deliverable_id = deliverable_id
            self.session.add(event)
            for f in files:
                f.deliverable_id = deliverable_id
                self.session.add(f)
            self.session.commit()
        except ConcurrentModification:
            raise
        except Exception:
            self.session.rollback()
            raise

        # commit expired the identity map; this reloads the authoritative row
        return self.load(deliverable_id)

    # -----------------
    # Administrative (outside the workflow)
    # -----------------

    def create(self, *, project_id, title, created_by, description=None, type="other",
               due_date=None, files=()):
        d = Deliverable(
            project_id=project_id,
            title=title,
            description=description,
            type=type or "other",
            due_date=due_date,
            status=DRAFT,
            version=1,
            created_by=created_by,
        )
        self.session.add(d)
        self.session.flush()
        self._attach_files(d.id, files, kind="review", start=0)
        self.session.commit()
        log.info("Deliverable %s created in project %s by user %s", d.id, project_id, created_by)
        return self.load(d.id)

    def update_details(self, deliverable: Deliverable, *, title=None, description=None, type=None,
                       due_date=None, files=()):
        if title is not None:
            deliverable.title = title
        if description is not None:
            deliverable.description = description
        if type is not None:
            deliverable.type = type
        if due_date is not None:
            deliverable.due_date = due_date
        self._attach_files(deliverable.id, files, kind="review", start=deliverable.next_file_position())
        self.session.commit()
        return self.load(deliverable.id)

    def delete(self, deliverable: Deliverable):
        deliverable_id = deliverable.id
        self.session.delete(deliverable)
        self.session.commit()
        log.info("Deliverable %s deleted", deliverable_id)

    def _attach_files(self, deliverable_id, files, *, kind, start):
        for offset, data in enumerate(files):
            f = DeliverableFile.from_payload(data, kind=kind, position=start + offset)
            f.deliverable_id = deliverable_id
            self.session.add(f)
