"""Tests for prompt rendering."""
from __future__ import annotations

import unittest

from grading_core.models import ImageDetail, PackageSummary, StructuredOffer
from grading_core.prompts import (
    build_offer_prompt,
    format_image_line,
    select_review_images,
    summarise_packages,
)


def _offer(image_count: int = 0, **overrides) -> StructuredOffer:
    details = [
        ImageDetail(url=f"https://img.example/{index}.jpg", type="PHOTO", alt=f"Alt {index}")
        for index in range(1, image_count + 1)
    ]
    values = dict(
        source_path="offers/42.json",
        activity_id=42,
        title="Blue Mountains Day Tour",
        location={"lat": -33.7, "long": 150.3},
        city="Sydney",
        country="Australia",
        category="Guided tours",
        description_markdown="## Overview\nScenic lookouts",
        images=[detail.url for detail in details],
        image_details=details,
    )
    values.update(overrides)
    return StructuredOffer(**values)


class SummarisePackagesTests(unittest.TestCase):
    def test_no_packages(self) -> None:
        self.assertEqual(summarise_packages([]), "No packages available.")

    def test_defaults_for_missing_name_and_details(self) -> None:
        text = summarise_packages(
            [
                PackageSummary(package_id=1, package_name="Premium", sections_markdown="Lunch included"),
                PackageSummary(package_id=2),
            ]
        )
        self.assertEqual(
            text,
            "Package: Premium\nLunch included\n\nPackage: Package 2\nNo details supplied.",
        )


class BuildOfferPromptTests(unittest.TestCase):
    def test_identifying_fields_and_placeholders(self) -> None:
        prompt = build_offer_prompt(_offer(subtitle=None))

        self.assertIn("Activity ID: 42", prompt)
        self.assertIn("Title: Blue Mountains Day Tour", prompt)
        self.assertIn("Subtitle: N/A", prompt)
        self.assertIn("What we love: N/A", prompt)
        self.assertIn('Location (lat,long): {"lat": -33.7, "long": 150.3}', prompt)
        self.assertIn("Address: N/A", prompt)
        self.assertIn("Current category: Guided tours", prompt)
        self.assertIn("Offer description markdown:\n## Overview\nScenic lookouts", prompt)
        self.assertIn("Packages:\nNo packages available.", prompt)
        self.assertTrue(prompt.endswith("Images provided (max 8 considered):\nNo images available."))

    def test_missing_description(self) -> None:
        prompt = build_offer_prompt(_offer(description_markdown=""))
        self.assertIn("Offer description markdown:\nNo description supplied.", prompt)

    def test_image_list_is_capped(self) -> None:
        offer = _offer(image_count=10)
        prompt = build_offer_prompt(offer)

        self.assertIn("[8] type=PHOTO alt=Alt 8 desc=N/A url=https://img.example/8.jpg", prompt)
        self.assertNotIn("[9]", prompt)
        self.assertIn("Always reference these numbers", prompt)
        self.assertEqual(len(select_review_images(offer)), 8)
        self.assertEqual(
            [image.url for image in select_review_images(offer, 3)],
            offer.images[:3],
        )

    def test_cap_above_review_limit_is_clamped(self) -> None:
        offer = _offer(image_count=12)
        prompt = build_offer_prompt(offer, max_images=10)

        self.assertIn("Images provided (max 8 considered):", prompt)
        self.assertIn("[8] ", prompt)
        self.assertNotIn("[9] ", prompt)
        self.assertEqual(select_review_images(offer, 10), offer.image_details[:8])

    def test_custom_image_cap(self) -> None:
        prompt = build_offer_prompt(_offer(image_count=5), max_images=2)
        self.assertIn("Images provided (max 2 considered):", prompt)
        self.assertIn("[2] ", prompt)
        self.assertNotIn("[3] ", prompt)


class FormatImageLineTests(unittest.TestCase):
    def test_defaults(self) -> None:
        line = format_image_line(1, ImageDetail(url="https://img.example/a.jpg", alt="  "))
        self.assertEqual(line, "[1] type=UNKNOWN alt=N/A desc=N/A url=https://img.example/a.jpg")

    def test_long_description_is_truncated(self) -> None:
        description = "x" * 150
        line = format_image_line(2, ImageDetail(url="u", description=description))
        self.assertIn(f"desc={'x' * 117}... url=u", line)

    def test_description_at_limit_is_kept(self) -> None:
        description = "y" * 120
        line = format_image_line(3, ImageDetail(url="u", description=f" {description} "))
        self.assertIn(f"desc={description} url=u", line)


if __name__ == "__main__":
    unittest.main()
