from pydantic import BaseModel


class PendingBatch(BaseModel):
    """The single batch currently accepting unbond requests."""
    id: int
    usteak_to_burn: int = 0          # Receipt tokens queued for burning
    est_unbond_start_time: int       # Earliest time the batch may be submitted


class Batch(BaseModel):
    """A submitted batch whose native stake is unbonding or awaiting withdrawal."""
    id: int
    reconciled: bool = False
    total_shares: int                # Sum of the shares of its unbond requests
    amount_unclaimed: int            # Native still owed to the batch's requesters
    est_unbond_end_time: int


class UnbondRequest(BaseModel):
    """A user's shares in one batch, keyed by (id, user)."""
    id: int                          # Batch id
    user: str
    shares: int = 0
