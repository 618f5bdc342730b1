"""Prompt construction for grading offers."""
from __future__ import annotations

import json
from typing import Any, List, Sequence

from .models import ImageDetail, PackageSummary, StructuredOffer

MAX_IMAGES_TO_REVIEW = 8
MAX_IMAGE_DESCRIPTION_LENGTH = 120

SYSTEM_PROMPT = """You are a senior Luxury Escapes curation editor. Evaluate each Klook offer for suitability on our platform.
Consider title clarity, image relevance, hero image suitability, category accuracy, description quality, and location correctness.
Return a strict JSON object with keys:
- score (0-5, integer)
- categories (array of categories that best describe the Klook activity. You can only choose from the list below)
- target_audiences (array of target audiences that best describe the Klook activity. You can only choose from the list below)
- hero_image_index (integer index from the numbered image list, starting at 1, or null if no supplied image is suitable)
- hero_image_url (string URL of the hero image that matches the numbered list entry, or null if none are acceptable)
- hero_image_reason (string explaining why the selected image works, or why none are acceptable)
- reason (concise justification including any category recommendations or red flags).

## Categories
These are the possible categories, note each is nested in a parent category. Do not include the parent category in the array.

{
  "Wine & Dine": [
    "Fine dining",
    "Restaurants & bars",
    "Cafés",
    "High tea",
    "Food tours",
    "Wine country trips",
    "Breweries, distilleries & vineyards"
  ],
  "Top Activities": [
    "Yachts, boats & cruises",
    "Cooking classes",
    "Up in the air",
    "Outdoor activities",
    "Watersports",
    "Indoor activities",
    "Photoshoot - Travelshoot",
    "Wildlife Cruises",
    "Cinemas",
    "Golf",
    "Ski",
    "Beach & Pool Clubs",
    "School Holidays"
  ],
  "Attractions & Tickets": [
    "Theme & water parks",
    "Attraction passes",
    "Museums",
    "Zoos & aquariums",
    "Historical sites",
    "Galleries"
  ],
  "Live Events": [
    "Concerts",
    "Theatre",
    "Live sports",
    "Special Events"
  ],
  "Indulge Yourself": [
    "Spa & massage",
    "Hot springs",
    "Wellness"
  ],
  "Lux Exclusives": [
    "The best of the best"
  ],
  "Travel Essentials": [
    "Airport lounges",
    "Luggage",
    "Airport Services",
    "Water Transfers"
  ],
  "Day Tours": [
    "Guided tours",
    "Walking tours",
    "Bike tours",
    "Hop-on-hop-off",
    "Private tours"
  ],
  "Gift Inspiration": [
    "Foodie",
    "Thrill Seeker",
    "Animal Lover",
    "Spa-goer",
    "Family",
    "Aquatic Enthusiast"
  ]
}


## Target Audiences
These are the possible target audiences. Some or all can apply (it is most common for all to apply).
- Solo
- Couple
- Group
- Family

When selecting the hero image:
- You should chose the image most appropriate to be the lead/hero image for the experience offer on our website. This is the image we show in search results, and first on the offer page.
- Use your understanding of the experience based on the offer description, and your knowledge of what customers are looking for, to guide your decision making
- The first image that Klook provided often is very edited to include a promotional overlay. We should not choose that one. (Text naturally in the image, e.g. on the side of a bus, is fine. Edited overlays are not)
- Ideally the customer would be able to look at the image and activity title and think 'I understand what that is about!'
- Use the numbered list of images provided in the prompt; pick the index that best matches the guidance.
- Return hero_image_url as the exact https URL from that list (do not respond with attachment:// references).
- If none of the supplied images are acceptable, set hero_image_index and hero_image_url to null and explain why in hero_image_reason.
"""


def _display(value: Any, placeholder: str = "N/A") -> str:
    if value is None or value == "":
        return placeholder
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def select_review_images(
    offer: StructuredOffer, max_images: int = MAX_IMAGES_TO_REVIEW
) -> List[ImageDetail]:
    """Return the images shown in the prompt and attached to the request."""

    return list(offer.image_details[: review_image_limit(max_images)])


def review_image_limit(max_images: int) -> int:
    return max(0, min(max_images, MAX_IMAGES_TO_REVIEW))


def summarise_packages(packages: Sequence[PackageSummary]) -> str:
    if not packages:
        return "No packages available."

    blocks: List[str] = []
    for index, package in enumerate(packages, start=1):
        name = package.package_name or f"Package {index}"
        details = package.sections_markdown or "No details supplied."
        blocks.append(f"Package: {name}\n{details}")
    return "\n\n".join(blocks)


def _truncate(text: str, limit: int = MAX_IMAGE_DESCRIPTION_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."


def format_image_line(position: int, image: ImageDetail) -> str:
    alt_text = (image.alt or "").strip() or "N/A"
    description = _truncate((image.description or "").strip()) or "N/A"
    image_type = image.type or "UNKNOWN"
    return f"[{position}] type={image_type} alt={alt_text} desc={description} url={image.url}"


def build_offer_prompt(offer: StructuredOffer, max_images: int = MAX_IMAGES_TO_REVIEW) -> str:
    """Render the user prompt describing ``offer`` and its numbered images."""

    lines: List[str] = [
        f"Activity ID: {_display(offer.activity_id)}",
        f"Title: {_display(offer.title)}",
        f"Subtitle: {_display(offer.subtitle)}",
        f"What we love: {_display(offer.what_we_love)}",
        f"Location (lat,long): {_display(offer.location)}",
        f"Address: {_display(offer.address)}",
        f"City: {_display(offer.city)}",
        f"Country: {_display(offer.country)}",
        f"Current category: {_display(offer.category)}",
        "",
        "Offer description markdown:",
        offer.description_markdown or "No description supplied.",
        "",
        "Packages:",
        summarise_packages(offer.packages),
        "",
        f"Images provided (max {review_image_limit(max_images)} considered):",
    ]

    images = select_review_images(offer, max_images)
    if not images:
        lines.append("No images available.")
    else:
        lines.append("Image metadata includes Klook's image_type to help avoid stylised banners.")
        lines.append(
            "Always reference these numbers when returning hero_image_index and use the exact URL shown."
        )
        lines.extend(format_image_line(position, image) for position, image in enumerate(images, start=1))

    return "\n".join(lines)
