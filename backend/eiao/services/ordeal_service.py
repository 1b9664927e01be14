"""
Everything Is An Ordeal: Ordeal Service (Business Logic Orchestrator)
=======================================================================

What:  Coordinates the path normalizer, the store, the image pipeline and the
       hit counter for every ordeal operation.
Who:   Called by the API and page routes; by the CLI for reconciliation.

Create flow (POST /api/ordeal/create):
    ┌───────────┐    ┌──────────────┐    ┌──────────────┐    ┌─────────┐
    │ normalize │───▶│ ImageService │───▶│ store.insert │───▶│ /<key>  │
    │   path    │    │   .store()   │    │  (hits = 0)  │    │redirect │
    └───────────┘    └──────────────┘    └──────────────┘    └─────────┘
    Image fails → ValidationError/FileStorageError, no record written.
    Insert fails → processed image removed, DatabaseError propagates.

View flow (GET /<key>, GET /api/ordeal/<key>):
    find_by_path → miss: None (caller prompts or 404s)
                 → hit:  submit increment(key, hits) to HitCounter,
                         return the record; display value is hits + 1

Delete flow (DELETE /api/ordeal/delete/<key>), two phases:
    1. store.delete_by_path  → the record is gone
    2. image_service.delete_image → best-effort
    A failure in phase 2 leaves an orphaned file, never a dangling record.
    `reconcile_images()` sweeps such files.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from eiao.exceptions import NotFoundError
from eiao.schemas.ordeal import OrdealRecord
from eiao.services.hit_counter import HitCounter
from eiao.services.image_service import ImageService
from eiao.services.ordeal_store import OrdealStore
from eiao.services.path_normalizer import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class DeleteOutcome:
    """What a delete request actually removed."""
    key: str
    record: Optional[OrdealRecord] = None
    image_removed: bool = False

    @property
    def existed(self) -> bool:
        return self.record is not None


class OrdealService:
    """
    Business logic for ordeals.

    Dependencies are passed in by the application factory, so tests can hand
    it an InMemoryOrdealStore and a temporary ImageService.
    """

    def __init__(
        self,
        store: OrdealStore,
        images: ImageService,
        hit_counter: HitCounter,
        leaderboard_size: int = 10,
    ):
        self.store = store
        self.images = images
        self.hit_counter = hit_counter
        self.leaderboard_size = leaderboard_size

    async def create_ordeal(
        self,
        raw_path: str,
        filename: Optional[str],
        content: Optional[bytes],
    ) -> OrdealRecord:
        """
        Create an ordeal at the normalized `raw_path` with the uploaded image.

        No check is made for an existing ordeal at the same key.

        Raises:
            ValidationError: no image attached, too large, or not decodable
            FileStorageError: the image could not be written
            DatabaseError: the insert failed (the stored image is removed)
        """
        key = normalize_path(raw_path)
        image_name = await self.images.store(key, filename, content)
        try:
            record = await self.store.insert(key, image_name)
        except Exception:
            await self.images.delete_image(image_name)
            raise
        logger.info("Ordeal created: %r with image %s", key, image_name)
        return record

    async def view_ordeal(self, raw_path: str) -> Optional[OrdealRecord]:
        """
        Look up the ordeal for a view and count the view.

        Returns the record as stored (pre-increment) or None on a miss. On a
        hit, the increment is submitted to the hit counter and not awaited.
        """
        key = normalize_path(raw_path)
        record = await self.store.find_by_path(key)
        if record is None:
            logger.debug("No ordeal at %r", key)
            return None
        self.hit_counter.submit(record.path, record.hits)
        return record

    async def get_ordeal_for_api(self, raw_path: str) -> OrdealRecord:
        """view_ordeal() for the JSON API: a miss raises NotFoundError (→ 404)."""
        record = await self.view_ordeal(raw_path)
        if record is None:
            raise NotFoundError(resource="ordeal", resource_id=normalize_path(raw_path))
        return record

    async def delete_ordeal(self, raw_path: str) -> DeleteOutcome:
        """
        Delete the ordeal at `raw_path` and then its image.

        Deleting a key that does not exist is not an error for the caller;
        it is logged at error level and reported through DeleteOutcome.
        """
        key = normalize_path(raw_path)
        record = await self.store.delete_by_path(key)
        if record is None:
            logger.error("Delete requested for %r but no ordeal exists there", key)
            return DeleteOutcome(key=key)

        image_removed = await self.images.delete_image(record.image_name)
        if not image_removed:
            logger.warning(
                "Ordeal %r deleted but image %s was not removed", key, record.image_name
            )
        logger.info("Ordeal deleted: %r", key)
        return DeleteOutcome(key=key, record=record, image_removed=image_removed)

    async def leaderboard(self) -> List[OrdealRecord]:
        return await self.store.list_top_by_hits(self.leaderboard_size)

    async def list_all(self) -> List[OrdealRecord]:
        return await self.store.list_all()

    async def total_hits(self) -> int:
        return await self.store.sum_all_hits()

    async def reconcile_images(self, dry_run: bool = False) -> List[str]:
        """Remove processed images that no ordeal references."""
        records = await self.store.list_all()
        return await self.images.sweep_orphans(
            (record.image_name for record in records), dry_run=dry_run
        )
