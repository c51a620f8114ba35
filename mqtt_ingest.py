# -*- coding: utf-8 -*-
"""
mqtt_ingest.py — Sottoscrizione MQTT → raw_data
- Due topic (temperatura, umidità) con payload scalare ("23.4")
- Timestamp lato server, stesso percorso di insert del ricevitore HTTP
- Avviabile da solo (con timer medie) o dentro receiver.py con MQTT_ENABLED=1
"""

import logging
import signal
from typing import Optional

import paho.mqtt.client as mqtt
from sqlalchemy.exc import SQLAlchemyError

import db
import readings
from aggregation import Aggregator, PeriodicAverager
from settings import load_settings, setup_logging

log = logging.getLogger("mqtt_ingest")


class MqttIngestor:
    def __init__(self, engine, aggregator: Aggregator, settings):
        self.engine = engine
        self.aggregator = aggregator
        self.settings = settings
        self.topics = {
            settings.mqtt_topic_temperature: "temperature",
            settings.mqtt_topic_humidity: "humidity",
        }
        self.client = None

    # --------------------------- callbacks ---------------------------
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            log.error("MQTT connection failed: %s", reason_code)
            return
        log.info("Connected to MQTT broker %s:%s", self.settings.mqtt_broker, self.settings.mqtt_port)
        for topic in self.topics:
            client.subscribe(topic)
        log.info("Subscribed to topics: %s", ", ".join(self.topics))

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            log.warning("Disconnected from MQTT broker: %s (paho will reconnect)", reason_code)

    def on_message(self, client, userdata, msg):
        self.handle_payload(msg.topic, msg.payload)

    # --------------------------- ingest ---------------------------
    def handle_payload(self, topic: str, payload: bytes) -> Optional[int]:
        rtype = self.topics.get(topic)
        if rtype is None:
            log.warning("Message on unexpected topic %s ignored", topic)
            return None
        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
            reading = readings.parse_reading({"type": rtype, "value": text.strip()})
        except (UnicodeDecodeError, readings.ReadingError) as e:
            log.warning("Invalid payload on %s: %r (%s)", topic, payload, e)
            return None

        self.aggregator.observe(reading.type, reading.value)
        try:
            row_id = readings.insert_reading(self.engine, reading)
        except SQLAlchemyError as e:
            log.error("Error storing %s reading: %s", rtype, e)
            return None
        log.debug("%s: %s stored (id %s)", rtype, reading.value, row_id)
        return row_id

    # --------------------------- client ---------------------------
    def build_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.settings.mqtt_client_id)
        client.on_connect = self.on_connect
        client.on_disconnect = self.on_disconnect
        client.on_message = self.on_message
        client.enable_logger(logging.getLogger("paho"))
        return client

    def start(self):
        self.client = self.build_client()
        self.client.connect_async(self.settings.mqtt_broker, self.settings.mqtt_port, keepalive=60)
        self.client.loop_start()

    def stop(self):
        if self.client is None:
            return
        log.info("Shutting down MQTT client")
        self.client.loop_stop()
        self.client.disconnect()
        self.client = None


def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    engine = db.get_engine(settings)
    db.ensure_schema(engine)
    aggregator = Aggregator(engine, settings.avg_window_seconds, settings.avg_min_gap_seconds)
    averager = PeriodicAverager(aggregator, settings.avg_check_seconds)
    averager.start()

    ingestor = MqttIngestor(engine, aggregator, settings)
    client = ingestor.build_client()
    signal.signal(signal.SIGTERM, lambda *_: client.disconnect())
    try:
        client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
    except OSError as e:
        log.error("Failed to connect to MQTT broker %s: %s", settings.mqtt_broker, e)
        raise SystemExit(2)
    try:
        client.loop_forever()
    except KeyboardInterrupt:
        client.disconnect()
    finally:
        averager.stop(timeout=5)


if __name__ == "__main__":
    main()
