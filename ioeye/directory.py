# ioeye/directory.py - Entity directory collaborators
"""
Entity directories list the workloads that should be reported on each
aggregation cycle.
"""

from typing import Callable, Iterable, List, Optional
import logging

from ioeye.exceptions import DirectoryError


class EntityDirectory:
    """
    Lists monitored entity names for a namespace.

    Returning None means "no restriction": every entity that produced
    I/O is reported.
    """

    def list_entities(self, namespace: str = "") -> Optional[List[str]]:
        raise NotImplementedError


class StaticEntityDirectory(EntityDirectory):
    """
    A fixed list of entities, typically from the configuration file.
    """

    def __init__(self, entities: Optional[Iterable[str]] = None):
        self.entities = list(entities or [])

    def list_entities(self, namespace: str = "") -> Optional[List[str]]:
        if not self.entities:
            return None
        return list(self.entities)


class CallableEntityDirectory(EntityDirectory):
    """
    Wraps a lookup function such as a cluster API client call.
    Any failure is reported as a DirectoryError.
    """

    def __init__(self, lookup: Callable[[str], Iterable[str]]):
        self.lookup = lookup
        self.logger = logging.getLogger(__name__)

    def list_entities(self, namespace: str = "") -> Optional[List[str]]:
        try:
            return list(self.lookup(namespace))
        except DirectoryError:
            raise
        except Exception as e:
            raise DirectoryError(f"Failed to list entities in '{namespace or '*'}': {e}") from e
