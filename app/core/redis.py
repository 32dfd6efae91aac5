# app/core/redis.py
import redis.asyncio as redis
from app.core.config import settings

# Используется только для блокировки при старте: планировщик запускает один воркер
redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
