"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from comaint.database import (
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
    get_session,
    init_database,
)
from comaint.graph import EntityDescriptor, Link, build_graph
from comaint.logger import StructuredLogger, reset_logger


class FakeCollaborators:
    """
    In-memory lookups and counters that record every call.

    parents: {parent_name: {(child_name, child_id): parent_id}}
    counts: {type_name: count}
    """

    def __init__(self, parents: Dict[str, Dict[Tuple[str, int], int]] = None, counts: Dict[str, int] = None):
        self.parents = parents or {}
        self.counts = counts or {}
        self.calls: List[tuple] = []
        # `timeout` keyword received by each call, in call order
        self.timeouts: List[Optional[float]] = []

    def parent_id_lookup(self, parent_name):
        def lookup(child_name, child_id, timeout=None):
            self.calls.append(("lookup", parent_name, child_name, child_id))
            self.timeouts.append(timeout)
            return self.parents.get(parent_name, {}).get((child_name, child_id))
        return lookup

    def child_counter(self, name):
        def counter(filters, timeout=None):
            self.calls.append(("count", name, dict(filters)))
            self.timeouts.append(timeout)
            return self.counts.get(name, 0)
        return counter

    def counter_filters(self, name):
        """Filters passed to the counter of `name`, one dict per call."""
        return [call[2] for call in self.calls if call[0] == "count" and call[1] == name]


@pytest.fixture
def fake_collaborators():
    """Factory for FakeCollaborators."""
    return FakeCollaborators


@pytest.fixture
def make_graph():
    """Build a graph from names, (child, parent) pairs and collaborators."""
    def _make(names, links, collaborators):
        descriptors = [
            EntityDescriptor(name, collaborators.parent_id_lookup(name), collaborators.child_counter(name))
            for name in names
        ]
        return build_graph(descriptors, [Link(child, parent) for child, parent in links])
    return _make


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    """Logger with no console or file output."""
    return StructuredLogger(name="comaint-test", level="DEBUG", enable_file=False, enable_console=False)


@pytest.fixture(autouse=True)
def fresh_global_logger():
    reset_logger()
    yield
    reset_logger()


@pytest.fixture
def maintenance_db(tmp_path) -> Path:
    """
    SQLite database holding a small maintenance hierarchy.

    Plant A (unit 1): sections 10, 11. Plant B (unit 2): section 20.
    Equipment 1003 is not installed in any section, article 301 is not stocked.
    """
    db_path = tmp_path / "comaint.db"
    init_database(db_path)
    session = get_session(db_path)
    session.add_all([
        Unit(id=1, name="Plant A"),
        Unit(id=2, name="Plant B"),
        Section(id=10, name="Boiler room", id_unit=1),
        Section(id=11, name="Workshop", id_unit=1),
        Section(id=20, name="Yard", id_unit=2),
        EquipmentFamily(id=1, name="Pumps"),
        EquipmentFamily(id=2, name="Motors"),
        EquipmentType(id=100, name="Centrifugal pump", id_equipment_family=1),
        EquipmentType(id=101, name="Piston pump", id_equipment_family=1),
        EquipmentType(id=200, name="Induction motor", id_equipment_family=2),
        Equipment(id=1000, name="Pump P1", id_equipment_type=100, id_section=10),
        Equipment(id=1001, name="Pump P2", id_equipment_type=101, id_section=11),
        Equipment(id=1002, name="Motor M1", id_equipment_type=200, id_section=20),
        Equipment(id=1003, name="Spare pump", id_equipment_type=100, id_section=None),
        WorkOrder(id=5000, name="Replace seal", id_equipment=1000),
        WorkOrder(id=5001, name="Check pressure", id_equipment=1000),
        WorkOrder(id=5002, name="Rewind motor", id_equipment=1002),
        Intervention(id=6000, name="Yearly inspection", id_equipment=1001),
        ArticleCategory(id=1, name="Seals"),
        ArticleSubcategory(id=30, name="Mechanical seals", id_article_category=1),
        Article(id=300, name="Seal 35mm", id_article_subcategory=30, id_section=10),
        Article(id=301, name="Seal 50mm", id_article_subcategory=30, id_section=None),
        Nomenclature(id=7000, quantity=2, id_article=300, id_equipment=1000),
        Nomenclature(id=7001, quantity=1, id_article=301, id_equipment=1002),
    ])
    session.commit()
    session.close()
    return db_path
