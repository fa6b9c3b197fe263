"""
Listing Generation Service
OpenAI chat completions in JSON mode, normalised to Etsy listing rules
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    OpenAIError,
)

from ..config import (
    DEFAULT_AUDIENCE,
    DEFAULT_NICHE,
    DEFAULT_TONE,
    ETSY_MESSAGE_INSTRUCTIONS,
    ETSY_PLATFORM_RULES,
    MATERIAL_COUNT,
    OPENAI_API_KEY,
    OPENAI_MAX_RETRIES,
    OPENAI_MAX_TOKENS,
    OPENAI_MODEL,
    OPENAI_TEMPERATURE,
    OPENAI_TIMEOUT,
    PINTEREST_CAPTION_MAX_LENGTH,
    PINTEREST_INSTRUCTIONS,
    SYSTEM_PROMPT,
    TAG_COUNT,
    TITLE_MAX_LENGTH,
    USER_PROMPT_TEMPLATE,
)
from ..errors import ExternalServiceError
from ..models import CSVRow, GenerationOutcome, ListingOutput
from ..utils.sanitizers import extract_focus_keywords, normalize_tag_list, sanitize_input

logger = logging.getLogger(__name__)


def build_prompt(row: CSVRow) -> str:
    """
    Build the user prompt for one CSV row
    Args:
        row: Validated CSV row
    Returns:
        Prompt text including any requested extras
    """
    keywords = extract_focus_keywords(sanitize_input(k) for k in row.keywords)

    prompt = USER_PROMPT_TEMPLATE.format(
        productName=sanitize_input(row.productName),
        niche=sanitize_input(row.niche or "") or DEFAULT_NICHE,
        audience=sanitize_input(row.audience or "") or DEFAULT_AUDIENCE,
        keywords=", ".join(keywords),
        tone=sanitize_input(row.tone or "") or DEFAULT_TONE,
        wordCount=row.wordCount,
        platformRules=json.dumps(ETSY_PLATFORM_RULES, indent=2),
    )

    if row.pinterestCaption:
        prompt += PINTEREST_INSTRUCTIONS
    if row.etsyMessage:
        prompt += ETSY_MESSAGE_INSTRUCTIONS

    return prompt


def parse_response(content: str, row: CSVRow) -> ListingOutput:
    """
    Parse and normalise the model's JSON answer
    Raises:
        ExternalServiceError: If the answer is not a usable JSON object
    """
    content = (content or "").strip()

    # Strip markdown fences if the model added them anyway
    if content.startswith("```json"):
        content = content[7:]
    elif content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]

    try:
        data = json.loads(content.strip())
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse OpenAI JSON: {e}")
        raise ExternalServiceError("Invalid response format from generation engine")

    if not isinstance(data, dict):
        raise ExternalServiceError("Invalid response format from generation engine")

    title = sanitize_input(str(data.get("title") or ""))[:TITLE_MAX_LENGTH].strip()
    description = sanitize_input(str(data.get("description") or ""))

    if not title or not description:
        raise ExternalServiceError("Generation engine returned an incomplete listing")

    listing: Dict[str, Any] = {
        "title": title,
        "description": description,
        "tags": normalize_tag_list(_as_list(data.get("tags")), TAG_COUNT, "tag"),
        "materials": normalize_tag_list(_as_list(data.get("materials")), MATERIAL_COUNT, "material"),
    }

    if row.pinterestCaption and data.get("pinterestCaption"):
        listing["pinterestCaption"] = sanitize_input(str(data["pinterestCaption"]))[:PINTEREST_CAPTION_MAX_LENGTH]
    if row.etsyMessage and data.get("etsyMessage"):
        listing["etsyMessage"] = sanitize_input(str(data["etsyMessage"]))

    return ListingOutput(**listing)


def _as_list(value) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return value.split(",")
    return []


class ListingGenerator:
    """
    Wraps the LLM call for a single listing

    The SDK's own retries are disabled; retries for connection and server
    errors happen here so a timeout is surfaced immediately.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = OPENAI_MODEL,
        timeout: float = OPENAI_TIMEOUT,
        max_retries: int = OPENAI_MAX_RETRIES,
        backoff_base: float = 1.0,
    ):
        if client is None:
            if not OPENAI_API_KEY:
                logger.warning("OPENAI_API_KEY not set - listing generation will fail")
            client = AsyncOpenAI(api_key=OPENAI_API_KEY or "missing", max_retries=0)
        self.client = client
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def generate(self, row: CSVRow) -> GenerationOutcome:
        """
        Generate one listing
        Args:
            row: Validated CSV row
        Returns:
            GenerationOutcome with the normalised listing
        Raises:
            ExternalServiceError: Timeout, provider failure, or unusable output
        """
        prompt = build_prompt(row)
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=OPENAI_TEMPERATURE,
                    max_tokens=OPENAI_MAX_TOKENS,
                    response_format={"type": "json_object"},
                    timeout=self.timeout,
                )
                break

            except APITimeoutError:
                logger.warning(f"OpenAI timed out after {self.timeout}s for '{row.productName}'")
                raise ExternalServiceError("Generation timed out")

            except (APIConnectionError, InternalServerError) as e:
                if attempt > self.max_retries:
                    logger.error(f"OpenAI failed after {attempt} attempts: {e}")
                    raise ExternalServiceError(f"Generation failed: {e}")
                wait_time = self.backoff_base * 2 ** (attempt - 1)
                logger.warning(f"OpenAI attempt {attempt} failed: {e}; retrying in {wait_time}s")
                await asyncio.sleep(wait_time)

            except OpenAIError as e:
                # Auth, rate limit and bad request errors are not retried
                logger.error(f"OpenAI error for '{row.productName}': {e}")
                raise ExternalServiceError(f"Generation failed: {e}")

        if not response.choices:
            raise ExternalServiceError("Generation engine returned no choices")

        content = response.choices[0].message.content
        if not content:
            raise ExternalServiceError("Generation engine returned an empty response")

        listing = parse_response(content, row)
        tokens_used = response.usage.total_tokens if response.usage else 0

        logger.info(f"Generated listing for '{row.productName}' ({tokens_used} tokens)")
        return GenerationOutcome(listing=listing, tokensUsed=tokens_used, model=self.model)
