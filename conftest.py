"""
Root pytest configuration.

Sets the environment required by the settings singleton at import time, so
it is in place before any package conftest or test module imports shared code.
"""

import os

# Set up environment variables before any imports
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test_service_key_1234567890123456789012345678901234567890")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")
os.environ.setdefault("OPENAI_API_KEY", "sk-test123456789012345678901234567890")
os.environ.setdefault("REPLICATE_API_TOKEN", "r8_test123456789012345678901234567890")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test_jwt_secret_123456789012345678901234567890")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_DIR", "logs")
os.environ.setdefault("WORKER_ID", "worker-test")
