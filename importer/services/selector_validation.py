"""
Selector validation for generated extraction rules.

Rules are proposed from a single sample page, so each field selector is
replayed against up to five members of the same fingerprint group:

- success_rate: fraction of members where the selector matches something
- density_score: mean content density of the first match on the members
  where it matched, rounded to one decimal
- is_brittle: success_rate < 1.0
- is_invalid: success_rate == 0
- is_low_density: prose fields whose density_score is below 5

Density rewards semantic descendants and non-link text and penalises link
clusters, which is what navigation and footer blocks look like:

    density = non_link_text_length / 200 + semantic_tags * 2 - links * 3

Validation never rejects a rule; the report is stored next to the selector
map so an operator can see which fields need attention.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)


@dataclass
class FieldValidation:
    """Validation outcome for one field selector."""

    field: str
    selector: str
    samples_tested: int
    samples_matched: int
    success_rate: float
    density_score: float
    is_brittle: bool
    is_low_density: bool
    is_invalid: bool
    failed_urls: List[str] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return self.is_brittle or self.is_invalid or self.is_low_density

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SelectorValidator:
    """
    Replays a selector map against sample pages of one group.

    Usage:
        validator = SelectorValidator()
        report = validator.validate(selector_map, [(url, stripped_html), ...])
        failures = validator.failures(report)
    """

    MAX_SAMPLES = 5
    SEMANTIC_TAGS = ["p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "article", "section"]
    PROSE_FIELDS = {"content", "body", "description"}
    LOW_DENSITY_THRESHOLD = 5.0

    def __init__(self, max_samples: int = MAX_SAMPLES):
        self.max_samples = max_samples

    def validate(
        self,
        selector_map: Dict[str, Dict[str, Any]],
        samples: Sequence[Tuple[str, str]],
    ) -> Dict[str, FieldValidation]:
        """
        Validate every field of a selector map.

        Args:
            selector_map: field -> {"selector", "attr", "multiple", "type"}
            samples: (url, stripped_html) pairs, sample page first

        Returns:
            field -> FieldValidation
        """
        parsed = [
            (url, BeautifulSoup(html or "", "html.parser"))
            for url, html in list(samples)[: self.max_samples]
        ]

        report = {}
        for name, rule in selector_map.items():
            report[name] = self._check_field(name, rule, parsed)
        return report

    def failures(self, report: Dict[str, FieldValidation]) -> List[Dict[str, Any]]:
        """Fields that are brittle, invalid or low-density, for operator display."""
        return [
            {
                "field": result.field,
                "selector": result.selector,
                "success_rate": result.success_rate,
                "density_score": result.density_score,
                "is_brittle": result.is_brittle,
                "is_invalid": result.is_invalid,
                "is_low_density": result.is_low_density,
                "failed_urls": result.failed_urls,
            }
            for result in report.values()
            if result.needs_attention
        ]

    def density(self, element: Tag) -> float:
        """Content density of one element."""
        text_length = len(element.get_text(" ", strip=True))
        links = element.find_all("a")
        if element.name == "a":
            link_text_length = text_length
        else:
            link_text_length = sum(len(a.get_text(" ", strip=True)) for a in links)

        non_link_length = max(text_length - link_text_length, 0)
        semantic = len(element.find_all(self.SEMANTIC_TAGS))
        return non_link_length / 200 + semantic * 2 - len(links) * 3

    def _check_field(
        self,
        name: str,
        rule: Dict[str, Any],
        parsed: List[Tuple[str, BeautifulSoup]],
    ) -> FieldValidation:
        selector = (rule or {}).get("selector") or ""
        matched = 0
        densities = []
        failed_urls = []

        for url, soup in parsed:
            element = self._select_first(soup, selector)
            if element is None:
                failed_urls.append(url)
                continue
            matched += 1
            densities.append(self.density(element))

        tested = len(parsed)
        success_rate = round(matched / tested, 2) if tested else 0.0
        density_score = round(sum(densities) / len(densities), 1) if densities else 0.0

        is_prose = name.lower() in self.PROSE_FIELDS or (rule or {}).get("type") == "richtext"
        result = FieldValidation(
            field=name,
            selector=selector,
            samples_tested=tested,
            samples_matched=matched,
            success_rate=success_rate,
            density_score=density_score,
            is_brittle=success_rate < 1.0,
            is_low_density=is_prose and density_score < self.LOW_DENSITY_THRESHOLD,
            is_invalid=matched == 0,
            failed_urls=failed_urls,
        )

        if result.is_invalid:
            logger.warning(f"Selector '{selector}' for '{name}' matched none of {tested} samples")
        elif result.is_brittle:
            logger.info(
                f"Selector '{selector}' for '{name}' matched {matched}/{tested} samples"
            )
        return result

    @staticmethod
    def _select_first(soup: BeautifulSoup, selector: str) -> Optional[Tag]:
        if not selector:
            return None
        try:
            return soup.select_one(selector)
        except Exception as e:
            logger.warning(f"Selector error for '{selector}': {e}")
            return None
