"""
Relationship graph and layering engine for selector resolution.

Responsibilities:
- Build the child -> parent graph of entity types from a static link list.
- Assign every entity type a floor (topological layer).
- Index entity types by floor.

Non-Responsibilities:
- No database access.
- No request handling.

Invariant:
floor(child) > floor(parent) for every link, and the graph never changes
once built.
"""

from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple


class ConfigurationError(Exception):
    """Raised when the entity registry or link list cannot form a valid graph."""
    pass


# collaborators are called with a `timeout` keyword: seconds left, or None
ParentIdLookup = Callable[..., Optional[int]]  # lookup(child_name, child_id, timeout=...)
ChildCounter = Callable[..., int]  # counter(filters, timeout=...)


@dataclass(frozen=True)
class EntityDescriptor:
    """Registry row: an entity type name and its two collaborators."""

    name: str
    parent_id_lookup: ParentIdLookup
    child_counter: ChildCounter


@dataclass(frozen=True)
class Link:
    """Declares that `child` rows reference one `parent` row."""

    child: str
    parent: str


@dataclass(frozen=True)
class EntityType:
    """
    Node of the relationship graph.

    `parents` and `children` hold handles, i.e. indexes into
    `RelationshipGraph.types`.
    """

    handle: int
    name: str
    parent_id_lookup: ParentIdLookup
    child_counter: ChildCounter
    parents: Tuple[int, ...]
    children: Tuple[int, ...]
    floor: int


def assign_floors(parents: Sequence[Sequence[int]], names: Optional[Sequence[str]] = None) -> List[int]:
    """
    Compute the floor of every node with Kahn's algorithm.

    Args:
        parents: parents[h] lists the parent handles of node h
        names: Optional node names, used in the error message

    Returns:
        floors[h] for every handle h

    Raises:
        ConfigurationError: If the graph has a cycle or a dangling parent handle
    """
    size = len(parents)
    children: List[List[int]] = [[] for _ in range(size)]
    pending = [0] * size

    for handle, parent_handles in enumerate(parents):
        for parent in parent_handles:
            if not 0 <= parent < size:
                label = names[handle] if names else handle
                raise ConfigurationError(f"Entity '{label}' references unknown parent handle {parent}")
            children[parent].append(handle)
            pending[handle] += 1

    floors = [-1] * size
    ready = deque(h for h in range(size) if pending[h] == 0)
    for handle in ready:
        floors[handle] = 0

    while ready:
        handle = ready.popleft()
        for child in children[handle]:
            # floor of a child is one above its highest parent
            floors[child] = max(floors[child], floors[handle] + 1)
            pending[child] -= 1
            if pending[child] == 0:
                ready.append(child)

    unresolved = [h for h in range(size) if pending[h] > 0]
    if unresolved:
        labels = [names[h] if names else str(h) for h in unresolved]
        raise ConfigurationError(
            f"Cannot layer entity graph, cycle through: {', '.join(labels)}"
        )
    return floors


def build_floor_index(floors: Sequence[int]) -> Tuple[Tuple[int, ...], ...]:
    """Group handles by floor, from floor 0 up to the highest floor."""
    if not floors:
        return ()
    index: List[List[int]] = [[] for _ in range(max(floors) + 1)]
    for handle, floor in enumerate(floors):
        index[floor].append(handle)
    return tuple(tuple(handles) for handles in index)


class RelationshipGraph:
    """
    Immutable entity graph with its floor index.

    Built once at startup by `build_graph` and shared, read-only, by every
    resolution.
    """

    def __init__(self, types: Tuple[EntityType, ...], floors: Tuple[Tuple[int, ...], ...]):
        self._types = types
        self._floors = floors
        self._handles = {entity.name: entity.handle for entity in types}

    @property
    def types(self) -> Tuple[EntityType, ...]:
        return self._types

    @property
    def floors(self) -> Tuple[Tuple[int, ...], ...]:
        return self._floors

    @property
    def names(self) -> List[str]:
        return [entity.name for entity in self._types]

    @property
    def highest_floor(self) -> int:
        return len(self._floors) - 1

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def handle(self, name: str) -> int:
        try:
            return self._handles[name]
        except KeyError:
            raise KeyError(f"Unknown entity type: {name}") from None

    def get(self, name: str) -> EntityType:
        return self._types[self.handle(name)]

    def parents_of(self, name: str) -> List[str]:
        return [self._types[h].name for h in self.get(name).parents]

    def children_of(self, name: str) -> List[str]:
        return [self._types[h].name for h in self.get(name).children]

    def describe(self) -> List[Tuple[int, List[str]]]:
        """Return (floor, entity names) pairs, lowest floor first."""
        return [
            (floor, [self._types[h].name for h in handles])
            for floor, handles in enumerate(self._floors)
        ]


def build_graph(descriptors: Iterable[EntityDescriptor], links: Iterable[Link]) -> RelationshipGraph:
    """
    Build the relationship graph and its floor index.

    Args:
        descriptors: Entity types, in registration order
        links: Child -> parent links between registered types

    Returns:
        RelationshipGraph

    Raises:
        ConfigurationError: On an empty registry, a duplicate name or link,
            a link to an unknown type, a self link, or a cycle
    """
    descriptors = list(descriptors)
    if not descriptors:
        raise ConfigurationError("Entity registry is empty")

    handles: Dict[str, int] = {}
    for handle, descriptor in enumerate(descriptors):
        if descriptor.name in handles:
            raise ConfigurationError(f"Duplicate entity type: {descriptor.name}")
        handles[descriptor.name] = handle

    parents: List[List[int]] = [[] for _ in descriptors]
    children: List[List[int]] = [[] for _ in descriptors]
    seen = set()
    for link in links:
        for name in (link.child, link.parent):
            if name not in handles:
                raise ConfigurationError(
                    f"Link {link.child} -> {link.parent} references unknown entity type: {name}"
                )
        if link.child == link.parent:
            raise ConfigurationError(f"Entity type {link.child} cannot be its own parent")
        if (link.child, link.parent) in seen:
            raise ConfigurationError(f"Duplicate link: {link.child} -> {link.parent}")
        seen.add((link.child, link.parent))

        child, parent = handles[link.child], handles[link.parent]
        parents[child].append(parent)
        children[parent].append(child)

    names = [d.name for d in descriptors]
    floors = assign_floors(parents, names)

    types = tuple(
        EntityType(
            handle=handle,
            name=descriptor.name,
            parent_id_lookup=descriptor.parent_id_lookup,
            child_counter=descriptor.child_counter,
            parents=tuple(parents[handle]),
            children=tuple(children[handle]),
            floor=floors[handle],
        )
        for handle, descriptor in enumerate(descriptors)
    )
    return RelationshipGraph(types, build_floor_index(floors))
