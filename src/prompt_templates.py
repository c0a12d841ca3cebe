"""
Prompt text sent to the vision and pricing models.
"""

from typing import Sequence

IMAGE_ANALYSIS_SYSTEM_PROMPT = """You are a professional property appraiser preparing an asset listing from photos.
List only real, physical items with market or resale value that are visible or clearly identifiable from labels.

Rules:
- Skip items cut off at the image border (less than half visible), blurry or unidentifiable items, and parts of another listed item.
- Never list people, animals, shadows, reflections or plain room structure (floor, ceiling, bare walls).
- Vehicles and machinery: put make and model in "name"; put year, trim, VIN, odometer reading, specifications and every visible defect in "details".
- Collages: if all panels show the same item, return it once with the details from every panel combined; if they show different items, list each once.
- Text in another language goes into "details" verbatim.

For each item return:
- "name": as specific as possible (brand, model, color, size when known)
- "condition": visual condition, e.g. "Good - light scuff marks"
- "details": visible features, labels, serial numbers and where the item sits

Respond with JSON only, in exactly this shape:
{"items": [{"name": "...", "condition": "...", "details": "..."}]}"""

SINGLE_IMAGE_INSTRUCTIONS = (
    "Analyze this image and identify all items visible. Skip items that are cut off "
    "at image borders (less than 50% visible). For vehicles or equipment, include all "
    "visible details, specifications, mileage and condition information."
)

ANNOTATED_IMAGE_INSTRUCTIONS = (
    "Analyze this image and identify all items visible. Skip items that are cut off "
    "at image borders (less than 50% visible). For each item, also return \"position\" "
    "in the image (top-left, center, bottom-right, ...), \"nearestItems\", a "
    "\"background\" description and its dominant \"color\". For vehicles or equipment, "
    "include all visible details, specifications, and condition information."
)

SIMILAR_ITEMS_NOTE = (
    "Do not drop similar items seen in other images; use position, background and "
    "color to tell them apart."
)

MARKET_SEARCH_SYSTEM_PROMPT = """You are a market research assistant that looks up current prices of items.
Respond in {language_name}. Always return prices in {currency}.
Format your response as a valid JSON object."""

MARKET_SEARCH_USER_PROMPT = """Search for current market prices of: {description}.
Find at least 5 different prices from reputable sources, in {currency}.
Return a JSON object:
{{"prices": [numbers without currency symbols], "sources": [source names], "marketTrend": "increasing" | "decreasing" | "stable"}}"""

VALUE_ESTIMATE_SYSTEM_PROMPT = """You are an expert appraiser who provides accurate market valuations.
Provide valuations in {currency}. Respond in {language_name}.{wear_tear_note}"""

LANGUAGE_NAMES = {
    "en": "English",
    "fr": "French",
    "es": "Spanish",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
}


def language_name(language: str) -> str:
    return LANGUAGE_NAMES.get(language.split("-")[0].lower(), "English")


def language_instruction(language: str) -> str:
    if language == "en":
        return ""
    return f"Respond in {language} language."


def previous_items_block(descriptions: Sequence[str]) -> str:
    """Numbered list of items already found in earlier images of the request."""
    if not descriptions:
        return ""
    lines = "\n".join(f"{i}. {desc}" for i, desc in enumerate(descriptions, start=1))
    return f"PREVIOUSLY IDENTIFIED ITEMS (DO NOT REPEAT THESE):\n{lines}"


def build_single_image_prompt(language: str) -> str:
    return " ".join(part for part in (SINGLE_IMAGE_INSTRUCTIONS, language_instruction(language)) if part)


def build_annotated_image_prompt(language: str, previous_items: Sequence[str]) -> str:
    parts = [ANNOTATED_IMAGE_INSTRUCTIONS, language_instruction(language)]
    block = previous_items_block(previous_items)
    text = " ".join(part for part in parts if part)
    if block:
        text = f"{text}\n\n{block}\n"
    return f"{text}\n{SIMILAR_ITEMS_NOTE}"


def build_value_estimate_prompt(name: str, condition: str, currency: str,
                                wear_tear: bool, details: str = "") -> str:
    prompt = f"What is the current market value in {currency} for: {name}"
    if condition:
        prompt += f" in {condition} condition. Consider how the condition affects the value."
    if wear_tear and details:
        prompt += (
            f' Also analyze these details for wear and tear that needs repair: "{details}".'
            f" Estimate the cost to repair these issues."
            f' Respond with a JSON object containing only: {{"value": <{currency} amount>,'
            f' "confidence": <0-1>, "repairCost": <{currency} amount>}}'
        )
    else:
        prompt += (
            f' Respond with a JSON object containing only: {{"value": <{currency} amount>,'
            f' "confidence": <0-1>}}'
        )
    return prompt
