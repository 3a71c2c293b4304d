"""Health subsystem — probe primitive and the periodic poller."""

from appwatch.health.poller import HealthPoller, build_endpoint, check_view, classify_failure
from appwatch.health.probes import NetworkProber, Prober, ProbeError, ProbeResult
