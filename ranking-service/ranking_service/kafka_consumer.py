"""
Kafka consumer for cache invalidation events from other services
"""
from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError
from typing import Optional
import json
import asyncio
import logging

from .config import settings
from .cache import cache as default_cache, RedisCache
from .schemas import PostEvent, RelationshipEvent

logger = logging.getLogger(__name__)


class KafkaConsumerManager:
    """Manage Kafka consumer for cache invalidation"""

    def __init__(self, cache: Optional[RedisCache] = None):
        self.cache = cache or default_cache
        self.consumer: Optional[AIOKafkaConsumer] = None
        self.running = False
        self.task: Optional[asyncio.Task] = None

    @property
    def topics(self):
        return [
            settings.KAFKA_TOPIC_POST_CREATED,
            settings.KAFKA_TOPIC_POST_DELETED,
            settings.KAFKA_TOPIC_FRIENDSHIP_ACCEPTED,
            settings.KAFKA_TOPIC_FRIENDSHIP_REMOVED,
            settings.KAFKA_TOPIC_FOLLOW_ACCEPTED,
            settings.KAFKA_TOPIC_UNFOLLOW,
        ]

    async def start(self):
        """Start Kafka consumer"""
        if not settings.KAFKA_ENABLED:
            logger.warning("Kafka is disabled")
            return

        try:
            self.consumer = AIOKafkaConsumer(
                *self.topics,
                bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
                group_id=settings.KAFKA_CONSUMER_GROUP,
                value_deserializer=lambda m: json.loads(m.decode('utf-8')),
                auto_offset_reset='latest',
                enable_auto_commit=True,
            )
            await self.consumer.start()
            logger.info(f"Kafka consumer started with group '{settings.KAFKA_CONSUMER_GROUP}'")

            self.running = True
            self.task = asyncio.create_task(self._consume_messages())

        except Exception as e:
            logger.error(f"Failed to start Kafka consumer: {e}")
            self.consumer = None

    async def stop(self):
        """Stop Kafka consumer"""
        self.running = False

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        if self.consumer:
            await self.consumer.stop()
            logger.info("Kafka consumer stopped")

    async def _consume_messages(self):
        """Consume and process messages from Kafka"""
        logger.info("Started consuming Kafka messages")

        try:
            async for message in self.consumer:
                if not self.running:
                    break

                try:
                    await self.process_event(message.topic, message.value)
                except Exception as e:
                    logger.error(f"Error processing message: {e}")

        except asyncio.CancelledError:
            logger.info("Kafka consumer task cancelled")

    async def process_event(self, topic: str, value: dict):
        """Dispatch one event to its handler"""
        logger.info(f"Processing message from topic '{topic}': {value.get('event_type')}")

        try:
            if topic in (settings.KAFKA_TOPIC_POST_CREATED, settings.KAFKA_TOPIC_POST_DELETED):
                await self._handle_post_event(PostEvent.model_validate(value))
            elif topic in (
                settings.KAFKA_TOPIC_FRIENDSHIP_ACCEPTED,
                settings.KAFKA_TOPIC_FRIENDSHIP_REMOVED,
            ):
                await self._handle_friendship_event(RelationshipEvent.model_validate(value))
            elif topic in (settings.KAFKA_TOPIC_FOLLOW_ACCEPTED, settings.KAFKA_TOPIC_UNFOLLOW):
                await self._handle_follow_event(RelationshipEvent.model_validate(value))
            else:
                logger.warning(f"Unknown topic: {topic}")

        except ValidationError as e:
            logger.error(f"Invalid event on topic '{topic}': {e}")

    async def _handle_post_event(self, event: PostEvent):
        """
        Handle post created/deleted event - the author's own feeds change

        Event format:
        {
            "event_type": "post_created",
            "post_id": 42,
            "user_id": 123
        }
        """
        logger.info(f"Handling {event.event_type}: post_id={event.post_id}, user_id={event.user_id}")
        # Followers' and friends' cached feeds are left to expire by TTL
        await self.cache.invalidate_user_feeds(event.user_id)

    async def _handle_friendship_event(self, event: RelationshipEvent):
        """
        Handle friendship accepted/removed event - both users' feeds and
        suggestions change

        Event format:
        {
            "event_type": "friendship_accepted",
            "user_id": 123,
            "friend_id": 456
        }
        """
        user_ids = event.affected_user_ids()
        if len(user_ids) < 2:
            logger.error(f"Invalid {event.event_type} event: missing user IDs")
            return

        logger.info(f"Handling {event.event_type}: users={user_ids}")
        for user_id in user_ids:
            await self.cache.invalidate_user_feeds(user_id)
            await self.cache.invalidate_user_suggestions(user_id)

    async def _handle_follow_event(self, event: RelationshipEvent):
        """
        Handle follow accepted/removed event - the follower's feeds change

        Event format:
        {
            "event_type": "follow_accepted",
            "follower_id": 123,
            "following_id": 456
        }
        """
        if not event.follower_id:
            logger.error(f"Invalid {event.event_type} event: missing follower_id")
            return

        logger.info(
            f"Handling {event.event_type}: follower={event.follower_id}, following={event.following_id}"
        )
        await self.cache.invalidate_user_feeds(event.follower_id)


# Global Kafka consumer instance
kafka_consumer = KafkaConsumerManager()
