"""
Selector Query Resolver.

Responsibilities:
- Validate a selector request before any collaborator call.
- Derive ancestor ids bottom-up from known descendant ids (phase A).
- Count descendants top-down for types whose id cannot be derived (phase B).
- Detect conflicting derivations.

Non-Responsibilities:
- No authorization.
- No persistence.
- No retries of collaborator calls.

Invariant:
A resolution returns one entry per entity type or raises exactly one error.
It never returns a partial result.
"""

import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from .graph import RelationshipGraph
from .logger import StructuredLogger, get_logger
from .schema import parse_selector


class ResolutionKind(Enum):
    KNOWN = "known"
    DERIVED = "derived"
    COUNTED = "counted"


@dataclass(frozen=True)
class ResolutionEntry:
    """Resolution outcome for one entity type: an id or a count, never both."""

    name: str
    kind: ResolutionKind
    id: Optional[int] = None
    count: Optional[int] = None

    def __post_init__(self):
        if self.kind is ResolutionKind.COUNTED:
            if self.count is None or self.id is not None:
                raise ValueError(f"Counted entry '{self.name}' must hold a count and no id")
        elif self.id is None or self.count is not None:
            raise ValueError(f"{self.kind.value.capitalize()} entry '{self.name}' must hold an id and no count")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.kind is ResolutionKind.COUNTED:
            data["count"] = self.count
        else:
            data["id"] = self.id
        return data


class ConflictError(Exception):
    """Raised when children of one entity type lead to different parent ids."""

    def __init__(self, name: str, candidates: Dict[str, int], known: Optional[int] = None):
        self.name = name
        self.candidates = dict(candidates)
        self.known = known
        if known is None:
            message = f"Conflicting ids derived for '{name}': {self.candidates}"
        else:
            message = f"Ids derived for '{name}' {self.candidates} disagree with supplied id {known}"
        super().__init__(message)


class ResolutionTimeout(TimeoutError):
    """Raised when a resolution exceeds its deadline."""
    pass


class _Deadline:
    def __init__(self, timeout: Optional[float]):
        self.timeout = timeout
        self.expires = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        if self.expires is None:
            return None
        return max(0.0, self.expires - time.monotonic())

    def expired(self) -> bool:
        return self.expires is not None and time.monotonic() >= self.expires

    def check(self):
        if self.expired():
            raise ResolutionTimeout(f"Selector resolution exceeded {self.timeout}s")


# raw request values never reach the log
_MAX_LOGGED_TEXT = 200
_MAX_LOGGED_FIELDS = 32


def _logged_fields(request: Any) -> List[str]:
    if not isinstance(request, Mapping):
        return []
    return [str(name)[:64] for name in list(request)[:_MAX_LOGGED_FIELDS]]


class SelectorResolver:
    """
    Resolves selector requests against a prebuilt relationship graph.

    The resolver holds no per-request state, so one instance can serve
    concurrent requests from several threads.
    """

    def __init__(
        self,
        graph: RelationshipGraph,
        logger: Optional[StructuredLogger] = None,
        max_workers: int = 1,
        strict_consistency: bool = False,
    ):
        """
        Args:
            graph: Relationship graph built by `build_graph`
            logger: Logger receiving events and metrics (default: global logger)
            max_workers: Collaborator calls issued concurrently within one floor
            strict_consistency: Also check supplied ids against ids derived
                from their children
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.graph = graph
        self.logger = logger if logger is not None else get_logger()
        self.max_workers = max_workers
        self.strict_consistency = strict_consistency

    def resolve(self, request: Mapping[str, Any], timeout: Optional[float] = None) -> List[ResolutionEntry]:
        """
        Resolve a selector request.

        Args:
            request: Entity type name -> known id
            timeout: Optional deadline in seconds for the whole resolution

        Returns:
            One ResolutionEntry per entity type, in registration order

        Raises:
            ValidationError: Malformed request, before any collaborator call
            ConflictError: Two children lead to different ids for one type
            ResolutionTimeout: Deadline exceeded
            Exception: Any collaborator failure, unchanged, unless it happens
                after the deadline (then ResolutionTimeout)
        """
        self.logger.record_resolution_attempt()
        started = time.monotonic()
        try:
            selector = parse_selector(request, self.graph)
            entries = self._resolve(selector, _Deadline(timeout))
        except Exception as e:
            self.logger.record_resolution_failure(type(e).__name__)
            self.logger.warning(
                "Selector resolution failed",
                error_type=type(e).__name__,
                error=str(e)[:_MAX_LOGGED_TEXT],
                fields=_logged_fields(request),
            )
            raise

        kinds: Dict[str, int] = {}
        for entry in entries:
            kinds[entry.kind.value] = kinds.get(entry.kind.value, 0) + 1
        self.logger.record_resolution_success(kinds)
        self.logger.info(
            "Selector resolved",
            request=selector,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
            **kinds,
        )
        return entries

    def _resolve(self, selector: Dict[str, int], deadline: _Deadline) -> List[ResolutionEntry]:
        types = self.graph.types
        ids: List[Optional[int]] = [None] * len(types)
        kinds: List[Optional[ResolutionKind]] = [None] * len(types)
        counts: List[Optional[int]] = [None] * len(types)

        for name, id_ in selector.items():
            handle = self.graph.handle(name)
            ids[handle] = id_
            kinds[handle] = ResolutionKind.KNOWN

        executor = ThreadPoolExecutor(max_workers=self.max_workers) if self.max_workers > 1 else None
        try:
            self._derive_ids(ids, kinds, deadline, executor)
            self._count_descendants(ids, kinds, counts, deadline, executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

        return [
            ResolutionEntry(name=entity.name, kind=kinds[h], id=ids[h], count=counts[h])
            for h, entity in enumerate(types)
        ]

    def _derive_ids(self, ids, kinds, deadline, executor):
        """Phase A: walk floors from the deepest up and derive parent ids."""
        types = self.graph.types
        for handles in reversed(self.graph.floors):
            calls: List[Callable[[], Any]] = []
            owners = []
            for h in handles:
                if kinds[h] is ResolutionKind.KNOWN and not self.strict_consistency:
                    continue
                entity = types[h]
                for child in entity.children:
                    if ids[child] is None:
                        continue
                    calls.append(partial(entity.parent_id_lookup, types[child].name, ids[child]))
                    owners.append((h, child))
            if not calls:
                continue

            results = self._run(calls, deadline, executor)
            for _ in calls:
                self.logger.record_lookup()

            candidates: Dict[int, Dict[str, int]] = {}
            for (h, child), parent_id in zip(owners, results):
                # a null answer carries no opinion
                if parent_id is None:
                    self.logger.debug(
                        "Lookup returned no parent",
                        entity=types[h].name,
                        child=types[child].name,
                        child_id=ids[child],
                    )
                    continue
                candidates.setdefault(h, {})[types[child].name] = parent_id

            for h in handles:
                found = candidates.get(h)
                if not found:
                    continue
                name = types[h].name
                values = set(found.values())
                if len(values) > 1:
                    self.logger.warning("Conflicting parent ids", entity=name, candidates=found)
                    raise ConflictError(name, found)
                (value,) = values
                if kinds[h] is ResolutionKind.KNOWN:
                    if value != ids[h]:
                        self.logger.warning(
                            "Supplied id disagrees with derived id", entity=name, known=ids[h], candidates=found
                        )
                        raise ConflictError(name, found, known=ids[h])
                    continue
                ids[h] = value
                kinds[h] = ResolutionKind.DERIVED
                self.logger.debug("Derived id", entity=name, id=value, sources=found)

    def _count_descendants(self, ids, kinds, counts, deadline, executor):
        """Phase B: walk floors from the roots down and count what is left."""
        types = self.graph.types
        cache: Dict[int, Dict[str, int]] = {}

        def ancestor_filters(h: int) -> Dict[str, int]:
            if h in cache:
                return cache[h]
            filters: Dict[str, int] = {}
            for parent in types[h].parents:
                if ids[parent] is not None:
                    filters[types[parent].name] = ids[parent]
                else:
                    filters.update(ancestor_filters(parent))
            cache[h] = filters
            return filters

        for handles in self.graph.floors:
            pending = [h for h in handles if ids[h] is None]
            if not pending:
                continue
            calls = [partial(types[h].child_counter, dict(ancestor_filters(h))) for h in pending]

            results = self._run(calls, deadline, executor)
            for h, count in zip(pending, results):
                self.logger.record_count()
                counts[h] = count
                kinds[h] = ResolutionKind.COUNTED

    def _run(self, calls, deadline: _Deadline, executor: Optional[ThreadPoolExecutor]) -> List[Any]:
        """
        Run the collaborator calls of one floor, in order or concurrently.

        Each call receives the seconds left before the deadline as `timeout`.
        A call failing after the deadline has passed fails the request with
        ResolutionTimeout; other failures are re-raised unchanged.
        """
        deadline.check()
        if executor is None:
            results = []
            for call in calls:
                deadline.check()
                try:
                    results.append(call(timeout=deadline.remaining()))
                except Exception as e:
                    if deadline.expired():
                        raise ResolutionTimeout(f"Selector resolution exceeded {deadline.timeout}s") from e
                    raise
                # a call may return after the deadline
                deadline.check()
            return results

        futures = [executor.submit(call, timeout=deadline.remaining()) for call in calls]
        done, pending = wait(futures, timeout=deadline.remaining(), return_when=FIRST_EXCEPTION)
        for future in futures:
            if future in done and future.exception() is not None:
                for other in pending:
                    other.cancel()
                if deadline.expired():
                    raise ResolutionTimeout(
                        f"Selector resolution exceeded {deadline.timeout}s"
                    ) from future.exception()
                # re-raises the collaborator's own exception
                future.result()
        if pending:
            for future in pending:
                future.cancel()
            raise ResolutionTimeout(f"Selector resolution exceeded {deadline.timeout}s")
        deadline.check()
        return [future.result() for future in futures]
