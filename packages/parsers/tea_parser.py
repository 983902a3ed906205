"""
Tea Label Parser - Extracts structured fields from OCR text

OCR output from printed cup labels and receipts is unreliable: characters go
missing, lines merge, stray punctuation appears. Every extractor therefore
works as a ladder:

1. Normalize (drop whitespace and a fixed punctuation set)
2. Keyword match against the normalized text
3. Regex fallback for garbled variants

Field rules:
- brand: first entry of an ordered brand list found in the text
- sugar / ice: ordered rules, keyword pass over all rules before any regex
- price: ordered patterns, first value within 1-200 yuan wins
- name: first line with a drink keyword, else first plausible line

Parsing never raises. A field that cannot be found is None.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import structlog

from packages.common.schemas.tea_info import ParsedTeaInfo

logger = structlog.get_logger()


@dataclass(frozen=True)
class MatchRule:
    """
    One canonical value with its exact keywords and a loose fallback pattern.

    Rules are kept in priority order: more specific phrasing first.
    """
    keywords: Tuple[str, ...]
    value: str
    pattern: re.Pattern


# Ordered: aliases of one brand sit together, earlier entries win ties
BRANDS = (
    '喜茶',
    'CoCo',
    'COCO',
    'coco',
    '霸王茶姬',
    '茶百道',
    '古茗',
    '奈雪',
    '奈雪的茶',
    '一点点',
    '蜜雪冰城',
    '书亦烧仙草',
    '茶颜悦色',
    '沪上阿姨',
    '益禾堂',
    '乐乐茶',
    '7分甜',
    'KOI',
    'koi',
)

SUGAR_RULES = (
    MatchRule(('7分糖', '七分糖', '少糖'), '少糖', re.compile(r'[7七]分?糖')),
    MatchRule(('5分糖', '五分糖', '半糖'), '半糖', re.compile(r'[5五]分?糖')),
    MatchRule(('3分糖', '三分糖', '微糖'), '微糖', re.compile(r'[3三]分?糖')),
    MatchRule(('0糖', '零糖', '无糖'), '无糖', re.compile(r'[0零]糖|无糖')),
    MatchRule(('正常糖', '标准糖', '全糖'), '正常糖', re.compile(r'正常糖|标准糖|全糖')),
)

ICE_RULES = (
    MatchRule(('7分冰', '七分冰', '少冰'), '少冰', re.compile(r'[7七]分?冰|少冰')),
    MatchRule(('去冰', '无冰', '0冰'), '去冰', re.compile(r'去冰|无冰|[0零]冰')),
    MatchRule(('正常冰', '标准冰', '全冰'), '正常冰', re.compile(r'正常冰|标准冰|全冰')),
    MatchRule(('温', '常温'), '温', re.compile(r'温|常温')),
    MatchRule(('热',), '热', re.compile(r'热')),
)

# Tried in order against the raw text; the first in-range value wins
PRICE_PATTERNS = (
    re.compile(r'[￥¥]\s*([0-9]+\.?[0-9]*)'),
    re.compile(r'([0-9]+\.?[0-9]*)\s*元'),
    re.compile(r'\$\s*([0-9]+\.?[0-9]*)'),
    re.compile(r'价格[：:]\s*([0-9]+\.?[0-9]*)'),
    re.compile(r'([0-9]{1,2}\.[0-9]{1,2})'),
    # Lone 1-3 digit number on its own line; can pick up page numbers
    re.compile(r'^([0-9]{1,3})$', re.MULTILINE),
)
MIN_PRICE = 1
MAX_PRICE = 200

DRINK_KEYWORDS = (
    '茶', '奶', '果', '波', '布丁', '椰', '芋', '红豆', '珍珠',
    '多肉', '葡萄', '柠檬', '草莓', '芝士', '烧仙草',
)

# Lines holding any of these are sugar/ice/price lines, not the drink name
NAME_EXCLUDED_MARKERS = ('糖', '冰', '￥', '¥', '元', '推荐')
FRACTION_PATTERN = re.compile(r'[0-9]+分')

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 15

_WHITESPACE = re.compile(r'\s+')
_PUNCTUATION = re.compile(r"""[，。、；："'（）\[\]{}“”‘’]""")


def clean_text(text: str) -> str:
    """Remove whitespace and common punctuation so keywords match across OCR noise"""
    return _PUNCTUATION.sub('', _WHITESPACE.sub('', text))


class TeaInfoParser:
    """
    Parses OCR text from a bubble-tea label or receipt into ParsedTeaInfo.

    The brand list is per instance so custom brands added by one caller do
    not leak into another.
    """

    def __init__(self, extra_brands: Iterable[str] = ()):
        self.brands: List[str] = list(BRANDS)
        for brand in extra_brands:
            self.add_custom_brand(brand)

    def add_custom_brand(self, brand: str) -> None:
        """Append a brand (lowest priority) unless already listed"""
        brand = brand.strip()
        if brand and brand not in self.brands:
            self.brands.append(brand)
            logger.info("custom_brand_added", brand=brand)

    def parse(self, text: str) -> ParsedTeaInfo:
        """
        Extract all fields from OCR text.

        Brand runs first because name extraction skips the brand line.
        The other fields are independent.
        """
        logger.debug("tea_parse_started", text_length=len(text), cleaned=clean_text(text))

        brand = self.extract_brand(text)
        result = ParsedTeaInfo(
            brand=brand,
            name=self.extract_name(text, brand),
            sugar=self.extract_sugar(text),
            ice=self.extract_ice(text),
            price=self.extract_price(text),
        )

        logger.info("tea_parse_completed",
                    filled=result.filled_fields(),
                    missing=result.missing_fields())
        return result

    def extract_brand(self, text: str) -> Optional[str]:
        cleaned = clean_text(text)
        for brand in self.brands:
            if clean_text(brand) in cleaned:
                logger.debug("brand_matched", brand=brand)
                return brand
        return None

    def extract_sugar(self, text: str) -> Optional[str]:
        return self._match_rules(text, SUGAR_RULES, field="sugar")

    def extract_ice(self, text: str) -> Optional[str]:
        return self._match_rules(text, ICE_RULES, field="ice")

    def _match_rules(self, text: str, rules: Tuple[MatchRule, ...], field: str) -> Optional[str]:
        """
        Two passes over ordered rules.

        Every keyword of every rule is tried before any regex, so exact
        phrasing beats a loose pattern from an earlier rule.
        """
        cleaned = clean_text(text)

        for rule in rules:
            for keyword in rule.keywords:
                if clean_text(keyword) in cleaned:
                    logger.debug("rule_keyword_matched", field=field, keyword=keyword, value=rule.value)
                    return rule.value

        for rule in rules:
            if rule.pattern.search(cleaned):
                logger.debug("rule_pattern_matched", field=field, pattern=rule.pattern.pattern,
                             value=rule.value)
                return rule.value

        logger.debug("rule_not_matched", field=field)
        return None

    def extract_price(self, text: str) -> Optional[float]:
        """
        Find a price in yuan.

        Each pattern contributes its first match only. A value outside 1-200
        (a year, a phone number fragment) is rejected and the next pattern
        is tried.
        """
        for pattern in PRICE_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            try:
                price = float(match.group(1))
            except ValueError:
                continue
            if MIN_PRICE <= price <= MAX_PRICE:
                logger.debug("price_matched", pattern=pattern.pattern, price=price)
                return price
            logger.debug("price_out_of_range", pattern=pattern.pattern, price=price)

        return None

    def extract_name(self, text: str, brand: Optional[str] = None) -> Optional[str]:
        """
        Pick the drink name line.

        Lines naming the brand or carrying sugar/ice/price markers are
        skipped. The first remaining line with a drink keyword wins; failing
        that, the first remaining line of plausible length is returned.
        """
        lines = [line.strip() for line in text.split('\n')]
        candidates = [line for line in lines if line and not self._is_excluded_line(line, brand)]

        for line in candidates:
            cleaned = clean_text(line)
            has_keyword = any(keyword in cleaned for keyword in DRINK_KEYWORDS)
            if has_keyword and NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
                logger.debug("name_matched", name=line)
                return line

        for line in candidates:
            if NAME_MIN_LENGTH <= len(line) <= NAME_MAX_LENGTH:
                logger.debug("name_fallback_matched", name=line)
                return line

        return None

    def _is_excluded_line(self, line: str, brand: Optional[str]) -> bool:
        cleaned = clean_text(line)
        if brand and clean_text(brand) in cleaned:
            return True
        if any(marker in cleaned for marker in NAME_EXCLUDED_MARKERS):
            return True
        return bool(FRACTION_PATTERN.search(cleaned))


_default_parser = TeaInfoParser()


def parse_tea_info(text: str) -> ParsedTeaInfo:
    """
    Convenience function to parse OCR text with the built-in brand list.

    Args:
        text: Raw OCR text, one recognized line per text line

    Returns:
        ParsedTeaInfo (fields not found are None)
    """
    return _default_parser.parse(text)
