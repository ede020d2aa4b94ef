"""Attribution of page cost to third-party products that can be lazy loaded.

Entity: set of domains a company or product area uses to deliver third-party resources.
Product: specific piece of software belonging to an entity. Entities can have several.
Facade: placeholder that looks like a product and swaps itself for the real
product when the user needs it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .first_resource import first_resource_product_names
from .models import Entity, ProductSummary, ResourceItem, URLCostSummary
from .third_party_db import ThirdPartyDatabase

logger = logging.getLogger(__name__)

CONDENSE_THRESHOLD_BYTES = 1000
OTHER_RESOURCES_LABEL = "Other resources"


def condense_items(items: list[ResourceItem], threshold: float = CONDENSE_THRESHOLD_BYTES) -> None:
    """Collapse the small tail of ``items`` into one trailing aggregate, in place.

    ``items`` must already be sorted by transfer size, largest first.
    """
    split_index = next(
        (i for i, item in enumerate(items) if item.transfer_size < threshold), None
    )
    if split_index is None:
        return

    remainder = items[split_index:]
    del items[split_index:]
    items.append(ResourceItem(
        url=OTHER_RESOURCES_LABEL,
        transfer_size=sum(item.transfer_size for item in remainder),
        blocking_time=sum(item.blocking_time for item in remainder),
        main_thread_time=sum(item.main_thread_time for item in remainder),
        first_start_time=0,
        first_content_available=0,
    ))


def get_facadable_product_summaries(
    by_url: Mapping[str, URLCostSummary | None],
    main_entity: Entity | None,
    third_party_db: ThirdPartyDatabase,
) -> list[ProductSummary]:
    """Group the cost of ``by_url`` under every facadable product seen loading.

    Returns only products whose first resource was observed.
    """
    # URLs without a cost summary carry no cost and no timing
    summaries = {url: s for url, s in by_url.items() if s is not None}

    def third_party_entity(url: str) -> Entity | None:
        entity = third_party_db.get_entity(url)
        if entity is None or third_party_db.is_first_party(url, main_entity):
            return None
        return entity

    entity_summaries: dict[str, dict[str, ProductSummary]] = {}

    # The first pass finds all requests to products that have a facade.
    for url in summaries:
        entity = third_party_entity(url)
        if entity is None:
            continue

        product = third_party_db.get_product(url)
        if product is None or not product.has_facade:
            continue

        product_summaries = entity_summaries.setdefault(entity.name, {})
        if product.name in product_summaries:
            continue

        logger.debug("Found facadable product %s (%s) via %s", product.name, entity.name, url)
        product_summaries[product.name] = ProductSummary(product=product)

    # The second pass finds the first request for any products found in the first pass.
    for url, url_summary in summaries.items():
        entity = third_party_entity(url)
        if entity is None:
            continue

        product_summaries = entity_summaries.get(entity.name)
        if not product_summaries:
            continue

        for product_name in first_resource_product_names(url):
            product_summary = product_summaries.get(product_name)
            if product_summary is None:
                continue

            product_summary.add(url_summary)
            # Resources of the same entity fetched after this point belong to the product.
            product_summary.start_of_product_requests = min(
                product_summary.start_of_product_requests,
                url_summary.first_content_available,
            )

    # The third pass finds all other resources belonging to one of the products found above.
    for url, url_summary in summaries.items():
        entity = third_party_entity(url)
        if entity is None:
            continue

        # The first resource was already counted.
        if first_resource_product_names(url):
            continue

        product_summaries = entity_summaries.get(entity.name)
        if not product_summaries:
            continue

        # A URL fetched after several anchors of one entity counts toward each of them.
        for product_summary in product_summaries.values():
            if url_summary.first_start_time < product_summary.start_of_product_requests:
                continue
            product_summary.add(url_summary)

    all_product_summaries = []
    for entity_name, product_summaries in entity_summaries.items():
        for product_summary in product_summaries.values():
            if not product_summary.is_anchored:
                logger.debug(
                    "Ignoring %s (%s): first resource never requested",
                    product_summary.product.name, entity_name,
                )
                continue
            all_product_summaries.append(product_summary)
    return all_product_summaries
