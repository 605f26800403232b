# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for the hub.
"""

from .metrics import metrics_registry, update_metrics, update_call_metrics

__all__ = ['metrics_registry', 'update_metrics', 'update_call_metrics']
