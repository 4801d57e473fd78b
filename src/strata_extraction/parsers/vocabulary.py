"""Material vocabulary and depth label patterns shared by the parsers."""

from __future__ import annotations

import re
from dataclasses import dataclass

from strata_extraction.utils.file_utils import read_params


@dataclass(frozen=True)
class DepthLabel:
    """A depth label found in a piece of text.

    `end` is only set for range labels such as "10-20".
    """

    value: float
    end: float | None = None


@dataclass(frozen=True)
class MaterialVocabulary:
    """Immutable vocabulary used to recognize and normalize material descriptions."""

    keywords: tuple[str, ...]
    normalization: tuple[tuple[str, str], ...]
    confidence_params: tuple[tuple[str, float], ...] = ()

    @classmethod
    def from_params(cls, params: dict) -> MaterialVocabulary:
        """Create the vocabulary from the `matching_params.yml` parameters."""
        return cls(
            keywords=tuple(keyword.lower() for keyword in params["material_keywords"]),
            normalization=tuple((key.lower(), value) for key, value in params["material_normalization"].items()),
            confidence_params=tuple((key, float(value)) for key, value in params["material_confidence"].items()),
        )

    @classmethod
    def from_config(cls, config_filename: str = "matching_params.yml") -> MaterialVocabulary:
        return cls.from_params(read_params(config_filename))

    def find_keyword(self, text: str) -> str | None:
        """Return the first vocabulary keyword contained in the text, if any."""
        lowered = text.lower()
        return next((keyword for keyword in self.keywords if keyword in lowered), None)

    def contains_material(self, text: str) -> bool:
        return self.find_keyword(text) is not None

    def normalize(self, text: str) -> str:
        """Normalize a material description.

        Known multi-word materials get their canonical spelling, everything else is title-cased.

        Args:
            text (str): The material description.

        Returns:
            str: The normalized material name.
        """
        cleaned = " ".join(text.split())
        mapped = dict(self.normalization).get(cleaned.lower())
        if mapped is not None:
            return mapped
        return " ".join(word[:1].upper() + word[1:].lower() for word in cleaned.split(" "))

    def material_confidence(self, text: str) -> float:
        """Score how likely a piece of text is a material description, between 0 and 1.

        Args:
            text (str): The candidate material text.

        Returns:
            float: The confidence of the text being a material description.
        """
        params = dict(self.confidence_params)
        lowered = text.strip().lower()
        confidence = params.get("base", 0.5)
        if lowered in self.keywords:
            confidence = params.get("exact_keyword", 0.9)
        elif self.contains_material(lowered):
            confidence = params.get("contains_keyword", 0.7)

        if len(lowered) > params.get("long_text_length", 50):
            confidence *= params.get("long_text_factor", 0.8)
        if re.search(r"\d", lowered):
            confidence *= params.get("digits_factor", 0.9)
        return confidence


class DepthLabelMatcher:
    """Recognizes depth labels and depth units in free text."""

    def __init__(self, params: dict):
        """Initialize the matcher.

        Args:
            params (dict): The `matching_params.yml` parameters.
        """
        patterns = params["depth_label_patterns"]
        self.value_with_unit = re.compile(patterns["value_with_unit"], re.IGNORECASE)
        self.value_with_apostrophe = re.compile(patterns["value_with_apostrophe"])
        self.range = re.compile(patterns["range"])
        self.depth_prefix = re.compile(patterns["depth_prefix"], re.IGNORECASE)
        self.leading_depth_patterns = [
            re.compile(pattern, re.IGNORECASE) for pattern in params["leading_depth_patterns"]
        ]
        self.max_depth = float(params["max_depth_label"])
        self.feet_pattern = re.compile(params["unit_detection"]["feet"], re.IGNORECASE)
        self.meters_pattern = re.compile(params["unit_detection"]["meters"], re.IGNORECASE)

    def match(self, text: str) -> DepthLabel | None:
        """Find a depth label in a piece of text.

        Supported forms are a number with an optional unit suffix ("12.5 m"), a number with an apostrophe ("10'"),
        a range at the start of the text ("10 - 20 ...") and an explicit prefix ("Depth: 12.5").

        Args:
            text (str): The text to search.

        Returns:
            DepthLabel | None: The depth label, or None if there is none or its value is out of range.
        """
        text = text.strip()
        if match := self.value_with_unit.match(text):
            label = DepthLabel(float(match.group(1)))
        elif match := self.value_with_apostrophe.match(text):
            label = DepthLabel(float(match.group(1)))
        elif match := self.range.match(text):
            label = DepthLabel(float(match.group(1)), float(match.group(2)))
        elif match := self.depth_prefix.search(text):
            label = DepthLabel(float(match.group(1)))
        else:
            return None

        if not 0 <= label.value < self.max_depth:
            return None
        return label

    def strip_leading_depth(self, text: str) -> str:
        """Remove a leading depth or depth range from a line of text."""
        for pattern in self.leading_depth_patterns:
            stripped = pattern.sub("", text, count=1)
            if stripped != text:
                return stripped.strip(" :-–,")
        return text.strip()

    def detect_unit(self, texts: list[str]) -> str | None:
        """Detect the depth unit from the number of texts mentioning feet or meters.

        Args:
            texts (list[str]): The lines of the document.

        Returns:
            str | None: "feet" or "meters", or None if no unit is mentioned.
        """
        feet_count = sum(1 for text in texts if self.feet_pattern.search(text))
        meters_count = sum(1 for text in texts if self.meters_pattern.search(text))
        if meters_count > feet_count:
            return "meters"
        if feet_count > 0:
            return "feet"
        return None
