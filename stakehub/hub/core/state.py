import logging
from typing import Dict, List, Optional, Set, Tuple

from ...protocol.types.batch import Batch, PendingBatch, UnbondRequest
from ...protocol.types.common import AuthorizationError, StateError
from ...protocol.types.hub import HubParams, MiningState
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

RequestKey = Tuple[int, str]


class HubState:
    """
    Working view over the hub's persistent store.

    Reads fall through to the DB and are cached; writes stay in the cache
    until `persist()`. Operations run against a `clone()`, so an aborted call
    leaves the original untouched.
    """

    def __init__(self, db: StorageDB):
        self.db = db
        self._params: Optional[HubParams] = None
        self._mining: Optional[MiningState] = None
        self._pending_batch: Optional[PendingBatch] = None
        # Cache for batches: id -> Batch
        self._batches: Dict[int, Batch] = {}
        self._removed_batches: Set[int] = set()
        # Cache for unbond requests: (batch id, user) -> UnbondRequest
        self._requests: Dict[RequestKey, UnbondRequest] = {}
        self._removed_requests: Set[RequestKey] = set()

    def clone(self) -> 'HubState':
        """Creates a copy of the state (for atomic execution)."""
        cloned = HubState(self.db)
        cloned._params = self._params.model_copy(deep=True) if self._params else None
        cloned._mining = self._mining.model_copy(deep=True) if self._mining else None
        cloned._pending_batch = self._pending_batch.model_copy() if self._pending_batch else None
        cloned._batches = {k: v.model_copy() for k, v in self._batches.items()}
        cloned._removed_batches = set(self._removed_batches)
        cloned._requests = {k: v.model_copy() for k, v in self._requests.items()}
        cloned._removed_requests = set(self._removed_requests)
        return cloned

    # --- Singletons ---

    def is_instantiated(self) -> bool:
        return self._params is not None or self.db.get_state("params") is not None

    @property
    def params(self) -> HubParams:
        if self._params is None:
            raw_json = self.db.get_state("params")
            if not raw_json:
                raise StateError("hub is not instantiated")
            self._params = HubParams.model_validate_json(raw_json)
        return self._params

    @params.setter
    def params(self, params: HubParams):
        self._params = params

    @property
    def mining(self) -> MiningState:
        if self._mining is None:
            raw_json = self.db.get_state("mining")
            if not raw_json:
                raise StateError("mining state is not initialised")
            self._mining = MiningState.model_validate_json(raw_json)
        return self._mining

    @mining.setter
    def mining(self, mining: MiningState):
        self._mining = mining

    @property
    def pending_batch(self) -> PendingBatch:
        if self._pending_batch is None:
            raw_json = self.db.get_state("pending_batch")
            if not raw_json:
                raise StateError("no pending batch")
            self._pending_batch = PendingBatch.model_validate_json(raw_json)
        return self._pending_batch

    @pending_batch.setter
    def pending_batch(self, batch: PendingBatch):
        self._pending_batch = batch

    def assert_owner(self, sender: str):
        if sender != self.params.owner:
            raise AuthorizationError("unauthorized: sender is not owner")

    # --- Batches ---

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        if batch_id in self._removed_batches:
            return None
        if batch_id in self._batches:
            return self._batches[batch_id]

        raw_json = self.db.get_batch(batch_id)
        if raw_json:
            batch = Batch.model_validate_json(raw_json)
            self._batches[batch_id] = batch
            return batch
        return None

    def save_batch(self, batch: Batch):
        self._removed_batches.discard(batch.id)
        self._batches[batch.id] = batch

    def remove_batch(self, batch_id: int):
        self._batches.pop(batch_id, None)
        self._removed_batches.add(batch_id)

    def _merged_batches(self, reconciled: Optional[bool]) -> List[Batch]:
        merged: Dict[int, Batch] = {}
        for batch_id, raw_json in self.db.get_batches(reconciled):
            merged[batch_id] = Batch.model_validate_json(raw_json)
        # Overlay cache: a cached copy may have flipped its flag
        for batch_id, batch in self._batches.items():
            merged[batch_id] = batch
        for batch_id in self._removed_batches:
            merged.pop(batch_id, None)

        batches = [merged[k] for k in sorted(merged)]
        if reconciled is not None:
            batches = [b for b in batches if b.reconciled == reconciled]
        # Hand out the cached instances so callers mutate what gets persisted
        for batch in batches:
            self._batches.setdefault(batch.id, batch)
        return [self._batches[b.id] for b in batches]

    def unreconciled_batches(self) -> List[Batch]:
        """Submitted batches not yet reconciled, ordered by id."""
        batches = self._merged_batches(reconciled=False)
        logger.debug(f"Found {len(batches)} unreconciled batches")
        return batches

    def all_batches(self) -> List[Batch]:
        return self._merged_batches(reconciled=None)

    # --- Unbond requests ---

    def get_unbond_request(self, batch_id: int, user: str) -> Optional[UnbondRequest]:
        key = (batch_id, user)
        if key in self._removed_requests:
            return None
        if key in self._requests:
            return self._requests[key]

        raw_json = self.db.get_unbond_request(batch_id, user)
        if raw_json:
            request = UnbondRequest.model_validate_json(raw_json)
            self._requests[key] = request
            return request
        return None

    def save_unbond_request(self, request: UnbondRequest):
        key = (request.id, request.user)
        self._removed_requests.discard(key)
        self._requests[key] = request

    def remove_unbond_request(self, batch_id: int, user: str):
        key = (batch_id, user)
        self._requests.pop(key, None)
        self._removed_requests.add(key)

    def _merge_requests(self, rows, predicate) -> List[UnbondRequest]:
        merged: Dict[RequestKey, UnbondRequest] = {}
        for batch_id, user, raw_json in rows:
            merged[(batch_id, user)] = UnbondRequest.model_validate_json(raw_json)
        for key, request in self._requests.items():
            if predicate(request):
                merged[key] = request
        for key in self._removed_requests:
            merged.pop(key, None)
        for key, request in merged.items():
            self._requests.setdefault(key, request)
        return [self._requests[k] for k in sorted(merged)]

    def unbond_requests_by_user(self, user: str) -> List[UnbondRequest]:
        """A user's outstanding requests, ordered by batch id."""
        return self._merge_requests(
            self.db.get_unbond_requests_by_user(user),
            lambda r: r.user == user,
        )

    def unbond_requests_by_batch(self, batch_id: int) -> List[UnbondRequest]:
        """All requests of one batch, ordered by user."""
        return self._merge_requests(
            self.db.get_unbond_requests_by_batch(batch_id),
            lambda r: r.id == batch_id,
        )

    # --- Persistence ---

    def persist(self):
        """
        Writes cached items to DB in one transaction.

        Batches and requests are dropped from the cache once written, so later
        clones only carry what the next call touches. Singletons stay cached.
        """
        with self.db.transaction():
            if self._params is not None:
                self.db.set_state("params", self._params.model_dump_json())
            if self._mining is not None:
                self.db.set_state("mining", self._mining.model_dump_json())
            if self._pending_batch is not None:
                self.db.set_state("pending_batch", self._pending_batch.model_dump_json())

            for batch_id, batch in self._batches.items():
                self.db.save_batch(batch_id, batch.reconciled, batch.model_dump_json())
            for batch_id in self._removed_batches:
                self.db.delete_batch(batch_id)

            for (batch_id, user), request in self._requests.items():
                self.db.save_unbond_request(batch_id, user, request.model_dump_json())
            for batch_id, user in self._removed_requests:
                self.db.delete_unbond_request(batch_id, user)

        self._batches.clear()
        self._removed_batches.clear()
        self._requests.clear()
        self._removed_requests.clear()

    def cached_items(self) -> int:
        """Batches, requests and tombstones held in memory."""
        return (len(self._batches) + len(self._removed_batches)
                + len(self._requests) + len(self._removed_requests))
