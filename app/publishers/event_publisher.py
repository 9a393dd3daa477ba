"""
RabbitMQ Event Publisher
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict

import pika

from app.config import settings

logger = logging.getLogger(__name__)

ORDER_CREATED_KEY = "order.created"
ORDER_STATUS_CHANGED_KEY = "order.status.changed"
ORDER_PAYMENT_CHANGED_KEY = "order.payment.changed"


class EventPublisher:
    """Publisher for sending order events to RabbitMQ"""

    def __init__(self):
        self.rabbitmq_url = settings.RABBITMQ_URL
        self.exchange = settings.RABBITMQ_EXCHANGE
        self.enabled = settings.EVENTS_ENABLED

    def _publish(self, event_type: str, routing_key: str, data: Dict, mandatory: bool = False) -> bool:
        """
        Publish an event envelope to the orders exchange

        Args:
            event_type: Event name, e.g. OrderCreated
            routing_key: Topic routing key
            data: Event payload
            mandatory: Fail when no queue is bound for the routing key

        Returns:
            True if published successfully, False otherwise
        """
        if not self.enabled:
            logger.debug(f"Events disabled, skipping {event_type}")
            return False

        try:
            connection = pika.BlockingConnection(
                pika.URLParameters(self.rabbitmq_url)
            )
            try:
                channel = connection.channel()

                channel.exchange_declare(
                    exchange=self.exchange,
                    exchange_type='topic',
                    durable=True
                )

                event = {
                    "event_type": event_type,
                    "event_id": str(uuid.uuid4()),
                    "event_version": "1.0",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "source": settings.SERVICE_NAME,
                    "data": data
                }

                # Enable publisher confirms
                channel.confirm_delivery()

                channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=routing_key,
                    body=json.dumps(event, default=str),
                    properties=pika.BasicProperties(
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        correlation_id=event["event_id"]
                    ),
                    mandatory=mandatory
                )
            finally:
                connection.close()

            logger.info(f"✓ Event published: {event_type} (ID: {event['event_id']})")
            return True

        except pika.exceptions.UnroutableError:
            logger.warning(f"✗ Event {event_type} could not be routed to any queue")
            return False
        except Exception as e:
            logger.error(f"✗ Error publishing {event_type} event: {e}")
            return False

    def publish_order_created(self, order_data: Dict) -> bool:
        """Publish OrderCreated event"""
        return self._publish("OrderCreated", ORDER_CREATED_KEY, order_data, mandatory=True)

    def publish_order_status_changed(self, order_data: Dict) -> bool:
        """Publish OrderStatusChanged event (old and new status)"""
        return self._publish("OrderStatusChanged", ORDER_STATUS_CHANGED_KEY, order_data)

    def publish_payment_status_changed(self, order_data: Dict) -> bool:
        """Publish PaymentStatusChanged event after reconciliation settles a payment"""
        return self._publish("PaymentStatusChanged", ORDER_PAYMENT_CHANGED_KEY, order_data)
