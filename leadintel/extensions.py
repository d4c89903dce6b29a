"""
Shared client instances — OpenAI.

Built at import only when the API key is present, so importing this module is
always safe (even when env vars are missing during tests).
"""
import logging

from leadintel.config import OPENAI_API_KEY

logger = logging.getLogger('leadintel.extensions')

# ── OpenAI ────────────────────────────────────────────────────────────────────
openai_client = None
if OPENAI_API_KEY:
    try:
        from openai import OpenAI
        openai_client = OpenAI(api_key=OPENAI_API_KEY)
        logger.info("OpenAI client initialized successfully")
    except Exception as e:
        logger.error("Error initializing OpenAI client: %s", e)
else:
    logger.info("OPENAI_API_KEY not set, business classification disabled")
