"""OTel metrics helper for gateway instrumentation."""

from opentelemetry.metrics import Counter, Histogram, Meter, MeterProvider


class MetricsHelper:
    """Convenience wrapper around an OTel ``Meter``.

    Args:
        meter_provider: The :class:`MeterProvider` to obtain a meter from.
        instrumentation_name: Identifies the instrumentation library,
            e.g. ``"rxcord.gateway"``.

    Example::

        helper = MetricsHelper(meter_provider, "rxcord.gateway")
        reconnects = helper.counter("rxcord.gateway.reconnects")
        reconnects.add(1, {"reason": "heartbeat_timeout"})
    """

    def __init__(self, meter_provider: MeterProvider, instrumentation_name: str):
        self._meter: Meter = meter_provider.get_meter(instrumentation_name)

    def counter(self, name: str, description: str = "", unit: str = "1") -> Counter:
        """Create (or retrieve) a monotonic counter instrument."""
        return self._meter.create_counter(name, description=description, unit=unit)

    def histogram(
        self, name: str, description: str = "", unit: str = "ms"
    ) -> Histogram:
        """Create (or retrieve) a histogram instrument."""
        return self._meter.create_histogram(name, description=description, unit=unit)
