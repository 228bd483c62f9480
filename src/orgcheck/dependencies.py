"""
Dependency Resolver Module

Retrieves "what references what" edges from the Salesforce Dependency API
(MetadataComponentDependency, Tooling API) for a list of component ids, and
partitions them per component.

Direction convention:
    An edge (id -> ref_id) means component ``id`` uses component ``ref_id``.
    For a given component, ``using`` lists what it uses (edges where it is the
    source) and ``referenced`` lists what uses it (edges where it is the target).

Functions:
    - resolve_dependencies: Batched composite lookups merged into a DependencyGraph
    - edges_from_responses: Normalizes and deduplicates Dependency API results

Classes:
    - DependencyEdge: One deduplicated edge
    - DependencyItem: One side of an edge as seen from a component
    - Dependencies: using / referenced / referenced_by_types of one component
    - DependencyGraph: Edges indexed once by source and by target id
"""
from collections import defaultdict
from dataclasses import dataclass, field
from urllib.parse import quote_plus

from orgcheck.constants import MAX_DEPENDENCY_REQUEST_SIZE
from orgcheck.logger import logger
from orgcheck.utils import case_safe_id, setup_url

DEPENDENCY_SOQL = (
    "SELECT MetadataComponentId, MetadataComponentName, MetadataComponentType, "
    "RefMetadataComponentId, RefMetadataComponentName, RefMetadataComponentType "
    "FROM MetadataComponentDependency "
    "WHERE RefMetadataComponentId = '(id)' "
    "OR MetadataComponentId = '(id)'"
)

# The "(id)" placeholder is kept readable so the composite call can substitute it
DEPENDENCY_URI_PATTERN = '/query?q=' + quote_plus(DEPENDENCY_SOQL, safe="()'")


@dataclass(frozen=True)
class DependencyEdge:
    id: str
    name: str
    type: str
    url: str
    ref_id: str
    ref_name: str
    ref_type: str
    ref_url: str


@dataclass(frozen=True)
class DependencyItem:
    id: str
    name: str
    type: str
    url: str


@dataclass
class Dependencies:
    using: list = field(default_factory=list)
    referenced: list = field(default_factory=list)
    referenced_by_types: dict = field(default_factory=dict)


class DependencyGraph:
    """Flat list of edges, indexed by source id and by target id at construction."""

    def __init__(self, edges=()):
        self.edges = list(edges)
        self._by_id = defaultdict(list)
        self._by_ref_id = defaultdict(list)
        for edge in self.edges:
            self._by_id[edge.id].append(edge)
            self._by_ref_id[edge.ref_id].append(edge)

    def __len__(self):
        return len(self.edges)

    def __iter__(self):
        return iter(self.edges)

    def partition(self, record_id):
        """Return the Dependencies of one component, in the order the edges were discovered."""
        record_id = case_safe_id(record_id)
        using = [DependencyItem(e.ref_id, e.ref_name, e.ref_type, e.ref_url)
                 for e in self._by_id.get(record_id, ())]
        referenced = [DependencyItem(e.id, e.name, e.type, e.url)
                      for e in self._by_ref_id.get(record_id, ())]
        referenced_by_types = {}
        for item in referenced:
            referenced_by_types[item.type] = referenced_by_types.get(item.type, 0) + 1
        return Dependencies(using=using, referenced=referenced, referenced_by_types=referenced_by_types)


def edges_from_responses(responses):
    """
    Build deduplicated edges from Dependency API query bodies.

    Args:
        responses: Bodies of the composite sub-responses (one query result each)

    Returns:
        list: DependencyEdge instances, unique per (id, ref_id)
    """
    edges = []
    seen = set()
    for response in responses:
        if not response or response.get('done') is not True or not response.get('totalSize'):
            continue
        for row in response.get('records') or []:
            edge_id = case_safe_id(row.get('MetadataComponentId'))
            ref_id = case_safe_id(row.get('RefMetadataComponentId'))
            if (edge_id, ref_id) in seen:
                continue
            seen.add((edge_id, ref_id))
            edges.append(DependencyEdge(
                id=edge_id,
                name=row.get('MetadataComponentName'),
                type=row.get('MetadataComponentType'),
                url=setup_url(row.get('MetadataComponentType'), row.get('MetadataComponentId')),
                ref_id=ref_id,
                ref_name=row.get('RefMetadataComponentName'),
                ref_type=row.get('RefMetadataComponentType'),
                ref_url=setup_url(row.get('RefMetadataComponentType'), row.get('RefMetadataComponentId'))
            ))
    return edges


async def resolve_dependencies(manager, ids):
    """
    Get the one-hop dependency edges of a set of components.

    Args:
        manager: SalesforceManager used for the composite calls
        ids: Deduplicated, case safe component ids

    Returns:
        DependencyGraph: Edges in both directions for those ids
    """
    if not ids:
        return DependencyGraph()
    logger.debug("Calling the Dependency API for %d ids...", len(ids))
    responses = await manager.call_composite(ids, True, DEPENDENCY_URI_PATTERN,
                                             max_request_size=MAX_DEPENDENCY_REQUEST_SIZE)
    graph = DependencyGraph(edges_from_responses(responses))
    logger.debug("Dependency API returned %d unique edges for %d ids", len(graph), len(ids))
    return graph
