from __future__ import annotations

import logging
from typing import Iterable, List

from ddf_query.core.concepts import ConceptCatalog
from .models import EntityDescriptor

logger = logging.getLogger(__name__)


def resolve_entity_descriptors(
    concept_names: Iterable[str], catalog: ConceptCatalog
) -> List[EntityDescriptor]:
    """Return one EntityDescriptor per column name, preserving order.

    An entity-set column carries its own name and its owning domain as
    declared in the concepts table. Every other name, including names the
    catalog does not know and entity sets with no declared domain, becomes a
    plain domain column. Files of one dataset are allowed to drift from the
    concepts table, so this never raises.
    """
    descriptors: List[EntityDescriptor] = []
    for name in concept_names:
        if catalog.is_entity_set(name):
            domain = catalog.domain_of(name)
            if domain:
                descriptors.append(EntityDescriptor(domain=domain, entity=name))
                continue
            logger.debug("Entity set %s has no domain; treating it as a domain", name)
        descriptors.append(EntityDescriptor(domain=name))
    return descriptors


__all__ = ["resolve_entity_descriptors"]
