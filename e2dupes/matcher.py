"""
Bouquet membership lookup for duplicate services.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence

from .errors import BouquetMatchError
from .models import Bouquet, ServiceWithBouquets

log = logging.getLogger(__name__)


def match_bouquets(duplicates: Sequence[ServiceWithBouquets], bouquets: Sequence[Bouquet]) -> None:
    """
    Attach every bouquet referencing a duplicate service to its view.

    Service ids are compared case-insensitively. A bouquet is attached at most
    once per service, so calling this twice gives the same result as once.
    """

    if not bouquets:
        log.debug("there are no bouquets, skip matching duplicate services to bouquets")
        return
    if not duplicates:
        log.debug("no duplicates, skip matching duplicate services to bouquets")
        return

    log.debug("matching %d duplicate services with %d bouquets", len(duplicates), len(bouquets))
    try:
        index = _index_by_service_id(duplicates)
        for bouquet in bouquets:
            for item in bouquet.iter_service_items():
                for view in index.get(item.service_id.lower(), ()):
                    if not any(existing is bouquet for existing in view.bouquets):
                        view.bouquets.append(bouquet)
    except Exception as exc:
        log.error("matching duplicates with bouquets failed: %s", exc)
        raise BouquetMatchError(f"there was an error while matching duplicates with bouquets: {exc}") from exc


def _index_by_service_id(duplicates: Iterable[ServiceWithBouquets]) -> Dict[str, List[ServiceWithBouquets]]:
    index: Dict[str, List[ServiceWithBouquets]] = {}
    for view in duplicates:
        index.setdefault(view.service_id.lower(), []).append(view)
    return index
