# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports hub metrics in Prometheus format.

Metrics:
- Calls, failures, effects dispatched
- Mining difficulty and mining power per validator
- Batch pipeline (pending shares, unreconciled batches)
- Economic metrics (total delegated, receipt supply, unlocked coins, fee rate)
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CALL METRICS
# ═══════════════════════════════════════════════════════════════════

calls_total = Counter(
    'stakehub_calls_total',
    'Total number of committed hub calls',
    ['action'],
    registry=metrics_registry
)

call_failures_total = Counter(
    'stakehub_call_failures_total',
    'Total number of hub calls rolled back',
    ['error'],
    registry=metrics_registry
)

effects_total = Counter(
    'stakehub_effects_total',
    'Total number of effects applied on the host',
    ['kind'],
    registry=metrics_registry
)

effects_per_call = Histogram(
    'stakehub_effects_per_call',
    'Number of host effects applied per committed call',
    buckets=[0, 1, 2, 5, 10, 20, 50],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# MINING METRICS
# ═══════════════════════════════════════════════════════════════════

mining_difficulty = Gauge(
    'stakehub_mining_difficulty',
    'Current proof-of-work difficulty (leading zero hex chars)',
    registry=metrics_registry
)

total_mining_power = Gauge(
    'stakehub_total_mining_power',
    'Sum of mining power over all validators',
    registry=metrics_registry
)

validator_mining_power = Gauge(
    'stakehub_validator_mining_power',
    'Mining power accrued by a validator',
    ['validator_address'],
    registry=metrics_registry
)

proofs_accepted_total = Counter(
    'stakehub_proofs_accepted_total',
    'Total number of accepted mining proofs',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# BATCH METRICS
# ═══════════════════════════════════════════════════════════════════

pending_batch_id = Gauge(
    'stakehub_pending_batch_id',
    'Id of the batch currently accepting unbond requests',
    registry=metrics_registry
)

pending_usteak_to_burn = Gauge(
    'stakehub_pending_usteak_to_burn',
    'Receipt tokens queued in the pending batch',
    registry=metrics_registry
)

unreconciled_batches = Gauge(
    'stakehub_unreconciled_batches',
    'Number of submitted batches not yet reconciled',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# ECONOMIC METRICS
# ═══════════════════════════════════════════════════════════════════

validator_count_total = Gauge(
    'stakehub_validator_count_total',
    'Number of whitelisted validators',
    registry=metrics_registry
)

validator_count_active = Gauge(
    'stakehub_validator_count_active',
    'Number of whitelisted validators not paused',
    registry=metrics_registry
)

total_delegated = Gauge(
    'stakehub_total_delegated',
    'Native stake delegated by the hub',
    registry=metrics_registry
)

usteak_supply = Gauge(
    'stakehub_usteak_supply',
    'Receipt token supply',
    registry=metrics_registry
)

unlocked_native = Gauge(
    'stakehub_unlocked_native',
    'Native coins received from the staking module and not yet reinvested',
    registry=metrics_registry
)

fee_rate = Gauge(
    'stakehub_fee_rate',
    'Fee charged on harvested rewards',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def update_metrics(state, host=None, contract_address=None):
    """
    Update all Prometheus gauges from hub state.
    Only updates Gauges, not Counters/Histograms.

    Args:
        state: HubState instance (instantiated)
        host: Optional StakingHost, for delegation and supply gauges
        contract_address: Hub address on `host`
    """
    params = state.params
    mining = state.mining

    mining_difficulty.set(mining.difficulty)
    total_mining_power.set(mining.total_mining_power)
    for validator, power in mining.validator_mining_powers.items():
        validator_mining_power.labels(validator_address=validator).set(power)

    pending = state.pending_batch
    pending_batch_id.set(pending.id)
    pending_usteak_to_burn.set(pending.usteak_to_burn)
    unreconciled_batches.set(len(state.unreconciled_batches()))

    validator_count_total.set(len(params.validators))
    validator_count_active.set(len(params.validators_active))
    unlocked_native.set(params.unlocked_coins.find(params.denom).amount)
    fee_rate.set(float(params.fee_rate))

    if host is not None and contract_address is not None:
        delegations = host.query_all_delegations(contract_address)
        total_delegated.set(sum(d.amount for d in delegations))
        if params.steak_token is not None:
            usteak_supply.set(host.query_token_supply(params.steak_token))


def update_call_metrics(action, effect_kinds, event_types):
    """
    Update counters for one committed call.

    Args:
        action: `action` attribute of the originating response
        effect_kinds: kind of every host effect applied during the call
        event_types: type of every hub event the call emitted
    """
    calls_total.labels(action=action or "unknown").inc()
    for kind in effect_kinds:
        effects_total.labels(kind=kind).inc()
    effects_per_call.observe(len(effect_kinds))

    proofs_accepted_total.inc(sum(1 for ty in event_types if ty == "steakhub/proof_accepted"))
