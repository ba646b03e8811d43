"""
Runtime configuration for One Good Thing.
Values come from the environment, with a local .env file loaded first.
"""

import os
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
)

# Storage
DATA_FILE = os.getenv("DATA_FILE", "journal_data.json")

# Entry limits
MAX_ENTRY_LENGTH = 240  # Characters, matches the composer limit
MAX_AI_INPUT_LENGTH = 500
MAX_TAGS_PER_ENTRY = 10
MAX_TAG_LENGTH = 30

# Day boundary policy: the viewer's local calendar day
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# AI Configuration
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))

# CORS
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

# Analyzer windows
INSIGHT_WINDOW_DAYS = 30
MAX_INSIGHT_WINDOW_DAYS = 3650
SPARKLINE_POINTS = 30
HEATMAP_MONTHS_BACK = 2
MIN_ENTRIES_FOR_INSIGHTS = 3
