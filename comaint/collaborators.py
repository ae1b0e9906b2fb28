"""
SQLAlchemy-backed lookup and counter collaborators.

Responsibilities:
- Map every selector entity type onto a table and its parent id columns.
- Read a child row's parent id.
- Count rows matching ancestor filters, following foreign keys through
  intermediate tables.

Non-Responsibilities:
- No graph layering.
- No writes.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from .database import (
    Article,
    ArticleCategory,
    ArticleSubcategory,
    Equipment,
    EquipmentFamily,
    EquipmentType,
    Intervention,
    Nomenclature,
    Section,
    Unit,
    WorkOrder,
)
from .graph import ChildCounter, ParentIdLookup


@dataclass(frozen=True)
class EntityBinding:
    """Table of an entity type and the column holding each parent's id."""

    model: type
    parent_columns: Mapping[str, str]


# units and sections are shared by the equipment and article branches
MAINTENANCE_BINDINGS: Dict[str, EntityBinding] = {
    "equipment-family": EntityBinding(EquipmentFamily, {}),
    "equipment-type": EntityBinding(EquipmentType, {"equipment-family": "id_equipment_family"}),
    "equipment": EntityBinding(Equipment, {
        "equipment-type": "id_equipment_type",
        "equipment-section": "id_section",
    }),
    "equipment-unit": EntityBinding(Unit, {}),
    "equipment-section": EntityBinding(Section, {"equipment-unit": "id_unit"}),
    "workorder": EntityBinding(WorkOrder, {"equipment": "id_equipment"}),
    "intervention": EntityBinding(Intervention, {"equipment": "id_equipment"}),
    "article-category": EntityBinding(ArticleCategory, {}),
    "article-subcategory": EntityBinding(ArticleSubcategory, {"article-category": "id_article_category"}),
    "article": EntityBinding(Article, {
        "article-subcategory": "id_article_subcategory",
        "article-section": "id_section",
    }),
    "article-unit": EntityBinding(Unit, {}),
    "article-section": EntityBinding(Section, {"article-unit": "id_unit"}),
    "nomenclature": EntityBinding(Nomenclature, {
        "article": "id_article",
        "equipment": "id_equipment",
    }),
}


# virtual machine steps between two deadline checks
PROGRESS_STEPS = 1000


@contextmanager
def statement_deadline(session: Session, timeout: Optional[float]):
    """
    Interrupt the session's SQLite statements once `timeout` seconds pass.

    The interrupted statement raises sqlalchemy.exc.OperationalError. Other
    dialects run without a statement deadline.
    """
    if timeout is None or session.get_bind().dialect.name != "sqlite":
        yield
        return

    expires = time.monotonic() + timeout
    dbapi_connection = session.connection().connection.driver_connection
    dbapi_connection.set_progress_handler(lambda: int(time.monotonic() >= expires), PROGRESS_STEPS)
    try:
        yield
    finally:
        # the connection goes back to the pool
        dbapi_connection.set_progress_handler(None, PROGRESS_STEPS)


class SqlCollaborators:
    """
    Builds per-entity-type collaborators over a SQLAlchemy session factory.

    Every call opens its own session, so the returned callables can run on
    several threads at once.
    """

    def __init__(self, session_factory: sessionmaker, bindings: Optional[Mapping[str, EntityBinding]] = None):
        self.session_factory = session_factory
        self.bindings = dict(bindings if bindings is not None else MAINTENANCE_BINDINGS)
        self._reach: Dict[tuple, bool] = {}

    def parent_id_lookup(self, parent_name: str) -> ParentIdLookup:
        """Return `lookup(child_name, child_id, timeout=None)` giving the `parent_name` id of a child row."""

        def lookup(child_name: str, child_id: int, timeout: Optional[float] = None) -> Optional[int]:
            binding = self.bindings[child_name]
            try:
                column = getattr(binding.model, binding.parent_columns[parent_name])
            except KeyError:
                raise KeyError(f"'{parent_name}' is not a parent of '{child_name}'") from None
            with self.session_factory() as session, statement_deadline(session, timeout):
                return session.query(column).filter(binding.model.id == child_id).scalar()

        return lookup

    def child_counter(self, type_name: str) -> ChildCounter:
        """Return `counter(filters, timeout=None)` counting `type_name` rows under the given ancestors."""
        binding = self.bindings[type_name]

        def counter(filters: Dict[str, int], timeout: Optional[float] = None) -> int:
            with self.session_factory() as session, statement_deadline(session, timeout):
                query = session.query(func.count(binding.model.id))
                for ancestor, ancestor_id in sorted(filters.items()):
                    query = query.filter(self._ancestor_clause(type_name, ancestor, ancestor_id))
                return query.scalar()

        return counter

    def _reaches(self, type_name: str, ancestor: str) -> bool:
        key = (type_name, ancestor)
        if key not in self._reach:
            parents = self.bindings[type_name].parent_columns
            self._reach[key] = ancestor in parents or any(self._reaches(p, ancestor) for p in parents)
        return self._reach[key]

    def _ancestor_clause(self, type_name: str, ancestor: str, ancestor_id: int):
        """WHERE clause matching `type_name` rows below `ancestor` row `ancestor_id`."""
        binding = self.bindings[type_name]
        clauses = []
        for parent, column_name in binding.parent_columns.items():
            column = getattr(binding.model, column_name)
            if parent == ancestor:
                clauses.append(column == ancestor_id)
            elif self._reaches(parent, ancestor):
                parent_model = self.bindings[parent].model
                subquery = (
                    select(parent_model.id)
                    .where(self._ancestor_clause(parent, ancestor, ancestor_id))
                    .correlate(None)
                )
                clauses.append(column.in_(subquery))
        if not clauses:
            raise KeyError(f"'{ancestor}' is not an ancestor of '{type_name}'")
        return or_(*clauses)
