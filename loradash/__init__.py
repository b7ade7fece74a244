"""LoRa soil-sensor telemetry: MQTT relay, REST range API and dashboard core."""

from .readings import Metric, SensorReading

__version__ = '0.1.0'
__all__ = ['Metric', 'SensorReading', '__version__']
