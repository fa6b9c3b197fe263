"""
Configuration, constants, and plan-specific rules
Environment variables override the runtime settings below
"""
import os

# OpenAI Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL_GENERATE", "gpt-4o")
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "2"))
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "60"))
OPENAI_TEMPERATURE = 0.7
OPENAI_MAX_TOKENS = 2000

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./listgenius.db")

# Identity provider
IDENTITY_API_URL = os.getenv("IDENTITY_API_URL", "https://api.clerk.com")
IDENTITY_SECRET_KEY = os.getenv("IDENTITY_SECRET_KEY", "")
IDENTITY_TIMEOUT = float(os.getenv("IDENTITY_TIMEOUT", "10"))

# Bulk jobs
JOB_RETENTION_SECONDS = int(os.getenv("JOB_RETENTION_SECONDS", "3600"))
JOB_SWEEP_INTERVAL_SECONDS = int(os.getenv("JOB_SWEEP_INTERVAL_SECONDS", "300"))
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "4"))
MAX_BULK_ROWS = int(os.getenv("MAX_BULK_ROWS", "500"))

# Server
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8080"))

# Plans
PLAN_TIERS = ("free", "pro", "business", "agency")
PAID_PLANS = {"pro", "business", "agency"}
BULK_ALLOWED_PLANS = {"pro", "business", "agency"}

FREE_GENERATIONS_PER_MONTH = 6
# Paid plans are advertised as unlimited; this is the internal safety cap
PAID_SOFT_CAP_PER_MONTH = 1000

PLAN_LIMITS = {
    "free": FREE_GENERATIONS_PER_MONTH,
    "pro": PAID_SOFT_CAP_PER_MONTH,
    "business": PAID_SOFT_CAP_PER_MONTH,
    "agency": PAID_SOFT_CAP_PER_MONTH,
}

# Listing options
ALLOWED_TONES = [
    "Professional", "Friendly", "Casual", "Formal", "Enthusiastic",
    "Warm", "Creative", "Luxury", "Playful", "Minimalist",
    "Artistic", "Rustic", "Modern", "Vintage", "Elegant"
]
DEFAULT_TONE = "Professional"
MIN_WORD_COUNT = 200
MAX_WORD_COUNT = 600
DEFAULT_WORD_COUNT = 300
BOOLEAN_VALUES = {"true", "false", "1", "0", "yes", "no"}
TRUE_VALUES = {"true", "1", "yes"}

# Etsy output rules
TAG_COUNT = 13
MATERIAL_COUNT = 13
TAG_MAX_LENGTH = 20
TITLE_MAX_LENGTH = 200
PINTEREST_CAPTION_MAX_LENGTH = 500
FORBIDDEN_TAG_SYMBOLS = ["&", "#", "@", "%", "^", "*", "!", "~", "`", "|", "\\", "<", ">"]

# CSV Import Configuration
MAX_CSV_SIZE_BYTES = 5 * 1024 * 1024
CSV_PREVIEW_ROWS = 5
REQUIRED_COLUMNS = ("productName", "keywords")

# Header aliases per logical column, compared case- and punctuation-insensitively
COLUMN_ALIASES = {
    "productName": ["product name", "productname", "product_name", "name", "title", "product title", "product_title"],
    "niche": ["niche", "category", "type"],
    "audience": ["audience", "target audience", "target_audience", "target"],
    "keywords": ["keywords", "keyword", "tags", "tag"],
    "tone": ["tone", "style", "voice"],
    "wordCount": ["word count", "wordcount", "word_count", "length", "words"],
    "pinterestCaption": ["pinterest caption", "pinterest_caption", "pinterest", "pin caption"],
    "etsyMessage": ["etsy message", "etsy_message", "etsy", "thank you", "thank_you"],
}

# CSV Export Configuration
CSV_BOM = "\ufeff"
EXPORT_COLUMNS = [
    "ID", "Title", "Description", "Tags", "Materials", "Tone", "Word Count",
    "Bulk Import ID", "Bulk Import Date", "Source", "Created At"
]
TEMPLATE_COLUMNS = [
    "Product Name", "Niche", "Target Audience", "Keywords", "Tone",
    "Word Count", "Pinterest Caption", "Etsy Message"
]
LIST_SEPARATOR = ", "

# Etsy platform rules handed to the model with every prompt
ETSY_PLATFORM_RULES = {
    "title": {"maxLength": TITLE_MAX_LENGTH, "words": 15, "frontLoadKeywords": True},
    "tags": {"count": TAG_COUNT, "maxLength": TAG_MAX_LENGTH, "forbiddenSymbols": FORBIDDEN_TAG_SYMBOLS},
    "materials": {"count": MATERIAL_COUNT},
    "description": {"firstSentenceHasKeyword": True, "noHtml": True},
}

SYSTEM_PROMPT = (
    "You are a professional Etsy listing generator. You ONLY generate listing content in JSON format. "
    "You do NOT answer questions, have conversations, or perform other tasks. "
    "Output must strictly follow the provided JSON schema."
)

USER_PROMPT_TEMPLATE = """Write an Etsy listing for the product below.

PRODUCT
- Name: {productName}
- Niche: {niche}
- Target audience: {audience}
- Focus keywords: {keywords}
- Tone: {tone}
- Description length: about {wordCount} words

PLATFORM RULES
{platformRules}

OUTPUT
Return valid JSON with these keys (no markdown, no comments):
{{
  "title": "exactly 15 words, focus keywords first",
  "description": "plain text, about {wordCount} words, keyword in the first sentence",
  "tags": ["13 tags, each at most 20 characters, no symbols"],
  "materials": ["13 materials or components"]
}}"""

PINTEREST_INSTRUCTIONS = (
    "\n**Pinterest Caption:** Generate a compelling Pinterest caption (max 500 characters) "
    "under the key \"pinterestCaption\" that includes relevant hashtags and encourages clicks."
)
ETSY_MESSAGE_INSTRUCTIONS = (
    "\n**Etsy Thank You Message:** Generate a warm, personalized thank you message for buyers "
    "under the key \"etsyMessage\" that includes care instructions and encourages reviews."
)
DEFAULT_NICHE = "Digital Products"
DEFAULT_AUDIENCE = "Etsy shoppers"
