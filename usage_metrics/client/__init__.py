"""Client library for reporting usage metrics to a collector."""

from .identity import load_or_create_install_id
from .models import MetricReport
from .writer import DisabledMetricWriter, MetricWriter, Writer, new_metric_writer

__all__ = [
    "DisabledMetricWriter",
    "MetricReport",
    "MetricWriter",
    "Writer",
    "load_or_create_install_id",
    "new_metric_writer",
]
