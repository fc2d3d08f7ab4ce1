"""Prometheus collector exposing meter totals on each scrape."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

from prometheus_client.core import CounterMetricFamily
from prometheus_client.registry import Collector

from app.schemas import ReadResult
from services.reader import MeterReader


@dataclass(frozen=True)
class MetricDescriptor:
    name: str
    documentation: str
    labels: Tuple[str, ...] = ()

    def family(self) -> CounterMetricFamily:
        return CounterMetricFamily(self.name, self.documentation, labels=list(self.labels))


class MeterCollector(Collector):
    """Reads the meter synchronously whenever the registry is collected."""

    def __init__(self, reader: MeterReader) -> None:
        self.reader = reader
        self.electricity = MetricDescriptor(
            "energy_electricity_total", "Electricity usage", ("type",)
        )
        self.gas = MetricDescriptor("energy_gas_total", "Gas usage")

    def describe(self) -> Iterator[CounterMetricFamily]:
        yield self.electricity.family()
        yield self.gas.family()

    def collect(self) -> Iterator[CounterMetricFamily]:
        yield from self.build_metrics(self.reader.read())

    def build_metrics(self, result: ReadResult) -> Sequence[CounterMetricFamily]:
        """Translate a read result into metric families; empty when unavailable."""
        reading = result.reading
        if reading is None:
            return []

        electricity = self.electricity.family()
        electricity.add_metric(["low"], reading.electricity_low)
        electricity.add_metric(["normal"], reading.electricity_normal)

        gas = self.gas.family()
        gas.add_metric([], reading.gas)

        return [electricity, gas]
