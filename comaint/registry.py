"""
Entity registry of the maintenance hierarchy.

Lists the entity types taking part in selector resolution and the
child -> parent links between them. The graph itself is built by
`comaint.graph.build_graph`.
"""

from typing import List

from .graph import EntityDescriptor, Link, RelationshipGraph, build_graph

MAINTENANCE_ENTITY_NAMES = [
    "equipment-family",
    "equipment-type",
    "equipment",
    "equipment-unit",
    "equipment-section",
    "workorder",
    "intervention",
    "article-category",
    "article-subcategory",
    "article",
    "article-unit",
    "article-section",
    "nomenclature",
]

MAINTENANCE_LINKS = [
    Link("equipment-type", "equipment-family"),
    Link("equipment", "equipment-type"),
    Link("equipment-section", "equipment-unit"),
    Link("equipment", "equipment-section"),

    Link("workorder", "equipment"),
    Link("intervention", "equipment"),

    Link("article-subcategory", "article-category"),
    Link("article", "article-subcategory"),
    Link("article-section", "article-unit"),
    Link("article", "article-section"),

    Link("nomenclature", "article"),
    Link("nomenclature", "equipment"),
]


def maintenance_descriptors(collaborators) -> List[EntityDescriptor]:
    """
    Describe every maintenance entity type with its collaborators.

    Args:
        collaborators: Object exposing `parent_id_lookup(name)` and
            `child_counter(name)`, such as `SqlCollaborators`

    Returns:
        Entity descriptors in registration order
    """
    return [
        EntityDescriptor(
            name=name,
            parent_id_lookup=collaborators.parent_id_lookup(name),
            child_counter=collaborators.child_counter(name),
        )
        for name in MAINTENANCE_ENTITY_NAMES
    ]


def build_maintenance_graph(collaborators) -> RelationshipGraph:
    """Build the relationship graph of the maintenance hierarchy."""
    return build_graph(maintenance_descriptors(collaborators), MAINTENANCE_LINKS)
